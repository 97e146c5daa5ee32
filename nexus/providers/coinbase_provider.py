"""Coinbase Advanced Trade broker provider.

Every call is: build path -> sign -> one HTTP request -> parse JSON -> map.
Nothing here retries; order placement in particular is sent exactly once.
"""
import json
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence

import httpx

from nexus.core.errors import NetworkError, UpstreamMalformedResponse, UpstreamProtocolError
from nexus.core.logging import get_logger
from nexus.core.symbols import to_base, to_product_id
from nexus.providers.base import (
    Account,
    Balance,
    BrokerProvider,
    OrderRequest,
    OrderResult,
    PriceQuote,
    ProductTicker,
)
from nexus.providers.signers import RequestSigner

logger = get_logger(__name__)

ORDER_REJECTED_FALLBACK = "Order rejected by Coinbase"


def _to_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _to_decimal(value: Any) -> Decimal:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        return Decimal("0")
    if not result.is_finite() or result < 0:
        return Decimal("0")
    return result


def extract_error_message(data: Any, fallback: str = ORDER_REJECTED_FALLBACK) -> str:
    """Most specific error text in a Coinbase error body.

    error_response detail fields win over top-level error, then message,
    then the fixed fallback.
    """
    if not isinstance(data, dict):
        return fallback
    er = data.get("error_response") if isinstance(data.get("error_response"), dict) else {}
    for candidate in (
        er.get("error_details"),
        er.get("message"),
        data.get("error"),
        data.get("message"),
        er.get("error"),
    ):
        if isinstance(candidate, str) and candidate.strip():
            return candidate
    return fallback


class CoinbaseProvider(BrokerProvider):
    """Coinbase Advanced Trade provider (real exchange integration)."""

    API_PREFIX = "/api/v3/brokerage"

    def __init__(
        self,
        signer: RequestSigner,
        base_url: str = "https://api.coinbase.com",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._signer = signer
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = client

    async def _send(self, method: str, path: str, body: str = "") -> httpx.Response:
        # Only signer-produced headers go out; nothing from the inbound request
        headers = self._signer.sign(method, path, body)
        url = f"{self.base_url}{path}"
        start_time = time.time()

        try:
            if self._client is not None:
                response = await self._client.request(
                    method, url, headers=headers, content=body or None, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(method, url, headers=headers, content=body or None)
        except httpx.TimeoutException as e:
            logger.warning("Coinbase %s %s timed out after %.1fs", method, path.split("?")[0], self.timeout)
            raise NetworkError("Coinbase request timed out") from e
        except httpx.HTTPError as e:
            logger.warning("Coinbase %s %s transport error: %s", method, path.split("?")[0], type(e).__name__)
            raise NetworkError("Failed to reach Coinbase") from e

        latency_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Coinbase %s %s -> %d (%dms)",
            method, path.split("?")[0], response.status_code, latency_ms,
            extra={"http_status": response.status_code, "elapsed_ms": latency_ms},
        )
        return response

    async def _request_json(self, method: str, path: str, body: str = "") -> Dict[str, Any]:
        response = await self._send(method, path, body)
        try:
            data = response.json()
        except ValueError:
            if not response.is_success:
                raise UpstreamProtocolError(response.status_code, {"raw": response.text[:500]})
            raise UpstreamMalformedResponse(response.text)

        if not response.is_success:
            raise UpstreamProtocolError(response.status_code, data)
        if not isinstance(data, dict):
            raise UpstreamMalformedResponse(response.text)
        return data

    async def list_products(self, product_ids: Sequence[str]) -> List[ProductTicker]:
        """Ticker snapshot for several products in one call."""
        query = "&".join(f"product_ids={to_product_id(p)}" for p in product_ids)
        path = f"{self.API_PREFIX}/products?{query}"
        data = await self._request_json("GET", path)

        return [
            ProductTicker(
                symbol=to_base(p.get("product_id", "")),
                price=_to_float(p.get("price")),
                change_24h=_to_float(p.get("price_percentage_change_24h")),
                volume_24h=_to_float(p.get("volume_24h")),
            )
            for p in data.get("products") or []
            if isinstance(p, dict)
        ]

    async def list_accounts(self) -> List[Account]:
        data = await self._request_json("GET", f"{self.API_PREFIX}/accounts")

        accounts = []
        for a in data.get("accounts") or []:
            if not isinstance(a, dict):
                continue
            balance = a.get("available_balance") or {}
            currency = a.get("currency", "")
            accounts.append(Account(
                currency=currency,
                name=a.get("name") or currency,
                available_balance=Balance(
                    value=_to_decimal(balance.get("value")),
                    currency=balance.get("currency") or currency,
                ),
            ))
        return accounts

    async def get_best_ask(self, symbol: str) -> PriceQuote:
        product_id = to_product_id(symbol)
        data = await self._request_json("GET", f"{self.API_PREFIX}/best_bid_ask?product_ids={product_id}")

        price = Decimal("0")
        pricebooks = data.get("pricebooks") or []
        if pricebooks and isinstance(pricebooks[0], dict):
            asks = pricebooks[0].get("asks") or []
            if asks and isinstance(asks[0], dict):
                price = _to_decimal(asks[0].get("price"))
        if price == 0:
            logger.warning("No ask price available for %s", product_id, extra={"product_id": product_id})
        return PriceQuote(symbol=to_base(symbol), best_ask=price)

    async def place_order(self, order: OrderRequest) -> OrderResult:
        """Place order on Coinbase Advanced Trade.

        Coinbase can return business failures with 200 and success=false, so
        both HTTP status and the success flag decide acceptance. Parse failures
        come back as a rejected result, never as an exception.
        """
        path = f"{self.API_PREFIX}/orders"
        body = json.dumps(order.to_payload())
        logger.info(
            "Submitting %s %s (client_order_id=%s)", order.side, order.product_id, order.client_order_id,
            extra={"product_id": order.product_id},
        )
        response = await self._send("POST", path, body)

        try:
            data = response.json()
        except ValueError:
            data = None

        if not response.is_success:
            message = extract_error_message(data)
            logger.error("Coinbase order failed (%d): %s", response.status_code, message)
            return OrderResult(
                accepted=False,
                status="FAILED",
                http_status=response.status_code,
                error_detail=message,
                raw=data if data is not None else {"raw": response.text[:500]},
            )

        if not isinstance(data, dict):
            logger.error("Coinbase order response was not JSON: %s", response.text[:200])
            return OrderResult(
                accepted=False,
                status="UNKNOWN",
                http_status=502,
                error_detail="Coinbase returned invalid JSON; order status unknown",
                raw={"raw": response.text[:500]},
            )

        if data.get("success") is False:
            message = extract_error_message(data)
            logger.error("Coinbase order rejected: %s", message)
            return OrderResult(
                accepted=False,
                status="REJECTED",
                http_status=400,
                error_detail=message,
                raw=data,
            )

        success_response = data.get("success_response") if isinstance(data.get("success_response"), dict) else {}
        order_id = data.get("order_id") or success_response.get("order_id")
        status = data.get("status") or "pending"
        logger.info("Order placed on Coinbase: %s (%s)", order_id, status)
        return OrderResult(
            accepted=True,
            status=status,
            http_status=response.status_code,
            order_id=order_id,
            raw=data,
        )
