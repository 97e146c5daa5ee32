"""Direct order placement route."""
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from nexus.api.deps import get_broker
from nexus.core.errors import ValidationError
from nexus.core.logging import get_logger
from nexus.providers.base import BrokerProvider
from nexus.providers.coinbase_provider import ORDER_REJECTED_FALLBACK
from nexus.services.trade_confirmation import build_market_order

router = APIRouter()
logger = get_logger(__name__)


class TradeRequest(BaseModel):
    type: Optional[str] = None
    symbol: Optional[str] = None
    amount: Optional[Any] = None


def _parse_amount(raw: Any) -> Decimal:
    if raw is None or isinstance(raw, bool):
        raise ValidationError("Missing required fields: type, symbol, amount")
    try:
        amount = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise ValidationError("Amount must be a number")
    if not amount.is_finite() or amount <= 0:
        raise ValidationError("Amount must be positive")
    return amount


@router.post("/trade")
async def place_trade(body: TradeRequest, broker: BrokerProvider = Depends(get_broker)):
    """
    Place a market order.

    For a buy, amount is the USD to spend; for a sell, the number of coins.
    """
    if not body.type or not body.symbol or body.amount in (None, ""):
        raise ValidationError("Missing required fields: type, symbol, amount")
    side = body.type.strip().lower()
    if side not in ("buy", "sell"):
        raise ValidationError("type must be buy or sell")
    symbol = body.symbol.strip()
    if not symbol:
        raise ValidationError("Missing required fields: type, symbol, amount")
    amount = _parse_amount(body.amount)

    order = build_market_order(side, symbol, amount)
    result = await broker.place_order(order)

    if not result.accepted:
        return JSONResponse(
            status_code=result.http_status,
            content={"error": result.error_detail or ORDER_REJECTED_FALLBACK, "details": result.raw},
        )
    return {"success": True, "orderId": result.order_id, "status": result.status}
