"""Assistant session tests: transcript, directive handling, failure phrasing."""
from decimal import Decimal

import pytest

from conftest import FakeBroker, make_account
from nexus.agents import response_templates as templates
from nexus.core.errors import NetworkError, ValidationError
from nexus.providers.base import ProductTicker
from nexus.services.assistant import AssistantSession, get_session, portfolio_context, reset_session
from nexus.services.trade_confirmation import TradeState


class StubTextClient:
    """Returns canned replies and records what it was sent."""

    def __init__(self, replies=None, status=200, error=None):
        self.replies = list(replies or [])
        self.status = status
        self.error = error
        self.calls = []

    async def create_message(self, system, messages):
        self.calls.append({"system": system, "messages": [dict(m) for m in messages]})
        if self.error is not None:
            raise self.error
        text = self.replies.pop(0) if self.replies else ""
        return self.status, {"content": [{"type": "text", "text": text}]}


class TestSendMessage:

    @pytest.mark.asyncio
    async def test_plain_reply(self):
        session = AssistantSession()
        llm = StubTextClient(["BTC is up 2% today."])

        reply = await session.send_message("How is BTC?", llm, "system")

        assert reply.text == "BTC is up 2% today."
        assert reply.trade is None
        assert session.transcript == [
            {"role": "user", "content": "How is BTC?"},
            {"role": "assistant", "content": "BTC is up 2% today."},
        ]

    @pytest.mark.asyncio
    async def test_directive_proposes_trade(self):
        session = AssistantSession()
        llm = StubTextClient(["I suggest buying. [TRADE: type=buy, symbol=BTC, amount=100, price=67240]"])

        reply = await session.send_message("Buy $100 of BTC", llm, "system")

        assert reply.text == "I suggest buying."
        assert reply.trade is not None
        assert reply.trade.state == TradeState.PROPOSED
        assert reply.trade.intent.amount == Decimal("100")
        assert {"label": "Confirm trade", "variant": "buy"} in reply.chips
        # The transcript keeps the raw directive for the next turn
        assert "[TRADE:" in session.transcript[-1]["content"]

    @pytest.mark.asyncio
    async def test_transcript_sent_in_full(self):
        session = AssistantSession()
        llm = StubTextClient(["one", "two"])
        await session.send_message("first", llm, "sys")
        await session.send_message("second", llm, "sys")

        sent = llm.calls[1]["messages"]
        assert [m["content"] for m in sent] == ["first", "one", "second"]
        assert llm.calls[1]["system"] == "sys"

    @pytest.mark.asyncio
    async def test_unreachable_service_is_an_assistant_message(self):
        session = AssistantSession()
        reply = await session.send_message("hi", StubTextClient(error=NetworkError("down")), "sys")
        assert reply.error
        assert reply.text == templates.SERVER_UNREACHABLE_MESSAGE
        assert session.transcript == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    async def test_error_status_is_an_assistant_message(self):
        session = AssistantSession()
        reply = await session.send_message("hi", StubTextClient(["x"], status=529), "sys")
        assert reply.error

    @pytest.mark.asyncio
    async def test_missing_client_is_an_assistant_message(self):
        reply = await AssistantSession().send_message("hi", None, "sys")
        assert reply.text == templates.SERVER_UNREACHABLE_MESSAGE

    @pytest.mark.asyncio
    async def test_empty_reply_fallback(self):
        reply = await AssistantSession().send_message("hi", StubTextClient([""]), "sys")
        assert reply.text == templates.EMPTY_REPLY_FALLBACK

    @pytest.mark.asyncio
    async def test_blank_text_rejected(self):
        with pytest.raises(ValidationError):
            await AssistantSession().send_message("   ", StubTextClient(), "sys")


class TestConfirmCancel:

    @pytest.mark.asyncio
    async def test_confirm_records_message(self):
        session = AssistantSession()
        llm = StubTextClient(["[TRADE: type=sell, symbol=ETH, amount=0.5, price=3000]"])
        reply = await session.send_message("sell half an ETH", llm, "sys")
        broker = FakeBroker()

        outcome = await session.confirm_trade(reply.trade.trade_id, broker)

        assert outcome.submitted
        assert broker.orders[0].base_size == "0.5"
        assert session.events[-1]["text"] == outcome.message
        assert session.to_dict()["pending_trades"] == []

    @pytest.mark.asyncio
    async def test_cancel_records_message(self):
        session = AssistantSession()
        llm = StubTextClient(["[TRADE: type=buy, symbol=SOL, amount=50, price=150]"])
        reply = await session.send_message("buy SOL", llm, "sys")

        outcome = session.cancel_trade(reply.trade.trade_id)
        assert outcome.message == templates.TRADE_CANCELLED_MESSAGE
        assert session.events[-1]["text"] == templates.TRADE_CANCELLED_MESSAGE


class TestPortfolioContext:

    @pytest.mark.asyncio
    async def test_change_merged_into_prompt(self):
        broker = FakeBroker(
            accounts=[make_account("BTC", "0.5"), make_account("USD", "100")],
            prices={"BTC": "70000"},
            tickers=[ProductTicker(symbol="BTC", price=70000.0, change_24h=2.5, volume_24h=10.0)],
        )
        holdings, total, connected = await portfolio_context(broker)

        assert broker.requested_products == [["BTC"]]
        by_symbol = {h["symbol"]: h for h in holdings}
        assert by_symbol["BTC"]["change"] == 2.5
        assert "change" not in by_symbol["USD"]
        prompt = templates.build_system_prompt(holdings, total, connected)
        assert "BTC: 0.5 units @ $70,000.00 (+2.50% 24h)" in prompt

    @pytest.mark.asyncio
    async def test_ticker_failure_keeps_holdings(self):
        class NoTickerBroker(FakeBroker):
            async def list_products(self, product_ids):
                raise NetworkError("Failed to reach Coinbase")

        broker = NoTickerBroker(accounts=[make_account("ETH", "2")], prices={"ETH": "3000"})
        holdings, total, connected = await portfolio_context(broker)
        assert connected
        assert total == 6000.0
        assert "change" not in holdings[0]

    @pytest.mark.asyncio
    async def test_connected(self):
        broker = FakeBroker(accounts=[make_account("BTC", "0.5")], prices={"BTC": "70000"})
        holdings, total, connected = await portfolio_context(broker)
        assert connected
        assert total == 35000.0
        assert holdings[0]["symbol"] == "BTC"

    @pytest.mark.asyncio
    async def test_no_broker(self):
        assert await portfolio_context(None) == ([], 0.0, False)


def test_session_singleton_reset():
    first = get_session()
    assert get_session() is first
    reset_session()
    assert get_session() is not first
    assert first.events[0]["text"] == templates.GREETING


def test_system_prompt_carries_directive_contract():
    prompt = templates.build_system_prompt(
        [{"symbol": "BTC", "amount": 0.5, "price": 70000.0}], 35000.0, connected=True,
    )
    assert "BTC: 0.5 units @ $70,000.00" in prompt
    assert "$35,000" in prompt
    assert "[TRADE: type=buy, symbol=BTC, amount=100, price=67240]" in prompt
    assert "Connected: Yes" in prompt


def test_disconnected_prompt_has_no_demo_wording():
    prompt = templates.build_system_prompt([], 0.0, connected=False)
    assert "Connected: No\n" in prompt
    assert "demo" not in prompt
    assert "Holdings: none" in prompt
