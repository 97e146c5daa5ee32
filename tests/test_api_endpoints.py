"""HTTP surface tests: routes, error envelope, CORS and method handling."""
import json
from decimal import Decimal

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import FakeBroker, make_account
from nexus.api import deps
from nexus.api.main import app
from nexus.core.errors import UpstreamMalformedResponse, UpstreamProtocolError
from nexus.providers.base import OrderResult, ProductTicker
from nexus.providers.text_generation import TextGenerationClient

client = TestClient(app)


class RaisingBroker(FakeBroker):
    def __init__(self, error):
        super().__init__()
        self.error = error

    async def list_accounts(self):
        raise self.error

    async def list_products(self, product_ids):
        raise self.error


class StubTextClient:
    def __init__(self, text):
        self.text = text

    async def create_message(self, system, messages):
        return 200, {"content": [{"type": "text", "text": self.text}]}


@pytest.fixture
def broker():
    fake = FakeBroker(
        accounts=[make_account("BTC", "0.5", name="BTC Wallet"), make_account("USD", "100", name="Cash")],
        prices={"BTC": "70000"},
        tickers=[ProductTicker(symbol="BTC", price=67000.0, change_24h=1.5, volume_24h=1000.0)],
    )
    app.dependency_overrides[deps.get_broker] = lambda: fake
    app.dependency_overrides[deps.get_optional_broker] = lambda: fake
    yield fake
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def _clear_overrides():
    yield
    app.dependency_overrides.clear()


class TestMarket:

    def test_market(self, broker):
        response = client.get("/market")
        assert response.status_code == 200
        assert response.json() == {"market": [{"symbol": "BTC", "price": 67000.0, "change": 1.5, "volume": 1000.0}]}
        assert broker.requested_products[0][0] == "BTC-USD"
        assert len(broker.requested_products[0]) == 10

    def test_upstream_error_status_passed_through(self):
        app.dependency_overrides[deps.get_broker] = lambda: RaisingBroker(
            UpstreamProtocolError(403, {"error": "PERMISSION_DENIED"})
        )
        response = client.get("/market")
        assert response.status_code == 403
        body = response.json()
        assert body["error"] == "Coinbase API error"
        assert body["status"] == 403
        assert body["details"] == {"error": "PERMISSION_DENIED"}
        assert body["request_id"]


class TestPortfolio:

    def test_portfolio(self, broker):
        response = client.get("/portfolio")
        assert response.status_code == 200
        body = response.json()
        assert body["totalValue"] == 35100.0
        assert body["portfolio"][0] == {
            "symbol": "BTC", "name": "BTC Wallet", "amount": 0.5, "price": 70000.0, "value": 35000.0,
        }

    def test_malformed_upstream(self):
        app.dependency_overrides[deps.get_broker] = lambda: RaisingBroker(UpstreamMalformedResponse("<html>"))
        response = client.get("/portfolio")
        assert response.status_code == 500
        assert response.json()["error"] == "Coinbase returned invalid JSON"
        assert response.json()["raw"] == "<html>"

    def test_missing_credentials_reports_presence_only(self, monkeypatch):
        from nexus.core.config import reset_settings
        monkeypatch.delenv("COINBASE_API_SECRET", raising=False)
        reset_settings()

        response = client.get("/portfolio")

        assert response.status_code == 500
        body = response.json()
        assert body["hasKey"] is True
        assert body["hasSecret"] is False
        assert "test-key" not in response.text

    def test_malformed_private_key_reports_signing_failure(self, monkeypatch):
        from nexus.core.config import reset_settings
        monkeypatch.setenv("COINBASE_AUTH_SCHEME", "jwt")
        monkeypatch.setenv("COINBASE_API_KEY_NAME", "organizations/o/apiKeys/k")
        monkeypatch.setenv("COINBASE_API_PRIVATE_KEY", "garbage-not-a-pem")
        reset_settings()

        response = client.get("/portfolio")

        assert response.status_code == 500
        assert response.json()["code"] == "SIGNING_FAILED"
        assert response.json()["error"] == "Failed to sign request"
        assert "garbage" not in response.text


class TestTrade:

    def test_buy(self, broker):
        response = client.post("/trade", json={"type": "buy", "symbol": "btc", "amount": 100})
        assert response.status_code == 200
        assert response.json() == {"success": True, "orderId": "order-123", "status": "pending"}
        order = broker.orders[0]
        assert order.product_id == "BTC-USD"
        assert order.to_payload()["order_configuration"] == {"market_market_ioc": {"quote_size": "100"}}

    def test_sell(self, broker):
        client.post("/trade", json={"type": "sell", "symbol": "ETH", "amount": "0.25"})
        assert broker.orders[0].to_payload()["order_configuration"] == {"market_market_ioc": {"base_size": "0.25"}}

    @pytest.mark.parametrize("body", [
        {"symbol": "BTC", "amount": 1},
        {"type": "buy", "amount": 1},
        {"type": "buy", "symbol": "BTC"},
        {"type": "hold", "symbol": "BTC", "amount": 1},
        {"type": "buy", "symbol": "BTC", "amount": -5},
        {"type": "buy", "symbol": "BTC", "amount": "abc"},
    ])
    def test_invalid_body(self, broker, body):
        response = client.post("/trade", json=body)
        assert response.status_code == 400
        assert "error" in response.json()
        assert broker.orders == []

    def test_rejection(self, broker):
        broker.order_result = OrderResult(
            accepted=False, status="FAILED", http_status=400,
            error_detail="Insufficient balance", raw={"error_response": {"error_details": "Insufficient balance"}},
        )
        response = client.post("/trade", json={"type": "buy", "symbol": "BTC", "amount": 100})
        assert response.status_code == 400
        assert response.json() == {
            "error": "Insufficient balance",
            "details": {"error_response": {"error_details": "Insufficient balance"}},
        }

    def test_get_not_allowed(self):
        response = client.get("/trade")
        assert response.status_code == 405
        assert response.json()["error"] == "Method not allowed"


class TestChat:

    def test_passthrough(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(529, json={"type": "error", "error": {"type": "overloaded_error"}})

        text_client = TextGenerationClient(
            api_key="sk-ant-test", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        app.dependency_overrides[deps.get_text_client] = lambda: text_client

        response = client.post("/chat", json={"system": "be brief", "messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 529
        assert response.json()["error"]["type"] == "overloaded_error"
        assert seen[0]["system"] == "be brief"
        assert len(seen) == 1
        assert seen[0]["messages"] == [{"role": "user", "content": "hi"}]

    def test_success_body_relayed(self):
        def handler(request):
            return httpx.Response(200, json={"content": [{"type": "text", "text": "hello"}], "stop_reason": "end_turn"})

        text_client = TextGenerationClient(
            api_key="sk-ant-test", client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        app.dependency_overrides[deps.get_text_client] = lambda: text_client

        response = client.post("/chat", json={"messages": [{"role": "user", "content": "hi"}]})

        assert response.status_code == 200
        assert response.json()["content"][0]["text"] == "hello"

    @pytest.mark.parametrize("turn", [
        {"role": "user"},
        {"content": "hi"},
        {"role": "system", "content": "hi"},
    ])
    def test_invalid_turn_rejected(self, turn):
        app.dependency_overrides[deps.get_text_client] = lambda: StubTextClient("unused")
        response = client.post("/chat", json={"system": "", "messages": [turn]})
        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_missing_key(self, monkeypatch):
        from nexus.core.config import reset_settings
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        reset_settings()
        response = client.post("/chat", json={"system": "", "messages": []})
        assert response.status_code == 500


class TestSession:

    def test_message_confirm_flow(self, broker):
        app.dependency_overrides[deps.get_optional_text_client] = lambda: StubTextClient(
            "Good entry. [TRADE: type=buy, symbol=BTC, amount=100, price=67240]"
        )

        reply = client.post("/session/messages", json={"text": "buy $100 of BTC"}).json()
        assert reply["text"] == "Good entry."
        trade_id = reply["trade"]["trade_id"]
        assert reply["trade"]["state"] == "proposed"

        confirmed = client.post(f"/session/trades/{trade_id}/confirm")
        assert confirmed.status_code == 200
        assert confirmed.json()["submitted"] is True
        assert len(broker.orders) == 1

        again = client.post(f"/session/trades/{trade_id}/confirm")
        assert again.status_code == 409
        assert len(broker.orders) == 1

    def test_cancel_and_reset(self, broker):
        app.dependency_overrides[deps.get_optional_text_client] = lambda: StubTextClient(
            "[TRADE: type=sell, symbol=ETH, amount=1, price=3000]"
        )
        trade_id = client.post("/session/messages", json={"text": "sell ETH"}).json()["trade"]["trade_id"]

        cancelled = client.post(f"/session/trades/{trade_id}/cancel")
        assert cancelled.json()["trade"]["state"] == "cancelled"
        assert broker.orders == []

        assert len(client.get("/session").json()["messages"]) > 1
        assert client.delete("/session").status_code == 200
        assert len(client.get("/session").json()["messages"]) == 1

    def test_unknown_trade(self):
        response = client.post("/session/trades/trd_nope/cancel")
        assert response.status_code == 409


class TestCrossCutting:

    def test_options_anywhere(self):
        for path in ("/market", "/trade", "/does-not-exist"):
            response = client.options(path)
            assert response.status_code == 200
            assert response.content == b""
            assert response.headers["access-control-allow-origin"] == "*"

    def test_wrong_method(self):
        response = client.put("/market")
        assert response.status_code == 405
        assert response.json()["error"] == "Method not allowed"

    def test_request_id_header(self, broker):
        response = client.get("/market")
        assert response.headers["X-Request-ID"]

    def test_health(self):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["coinbase"] == {"hasKey": True, "hasSecret": True}
        assert "test-secret" not in json.dumps(body)
