"""Confirmation workflow for trades proposed by the assistant.

Each proposal moves PROPOSED -> CONFIRMED or PROPOSED -> CANCELLED exactly
once. The state flips synchronously before the order call is awaited, so a
second confirm (double click, retrying client) finds a terminal trade and is
rejected instead of placing another order.
"""
import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, List, Optional

from nexus.agents import response_templates as templates
from nexus.agents.trade_parser import TradeIntent
from nexus.core.errors import NexusError, TradeStateError
from nexus.core.ids import new_client_order_id, new_id
from nexus.core.logging import get_logger
from nexus.core.symbols import to_product_id
from nexus.providers.base import BrokerProvider, OrderRequest, OrderResult

logger = get_logger(__name__)

PENDING_TRADE_TTL_SECONDS = 300
# Confirmed/cancelled records kept for status lookups; oldest are dropped first
MAX_TERMINAL_TRADES = 100


class TradeState(str, Enum):
    PROPOSED = "proposed"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


@dataclass
class PendingTrade:
    """Trade intent awaiting (or past) user confirmation."""
    trade_id: str
    intent: TradeIntent
    created_at: float
    state: TradeState = TradeState.PROPOSED
    client_order_id: Optional[str] = None
    cancel_reason: Optional[str] = None
    result: Optional[OrderResult] = None

    def is_expired(self, ttl_seconds: int, now: float) -> bool:
        if ttl_seconds <= 0:
            return False
        return now - self.created_at > ttl_seconds

    def to_dict(self) -> Dict:
        return {
            "trade_id": self.trade_id,
            "state": self.state.value,
            "type": self.intent.side,
            "symbol": self.intent.symbol,
            "amount": float(self.intent.amount),
            "price": float(self.intent.reference_price),
            "total": float(self.intent.notional_estimate),
            "client_order_id": self.client_order_id,
            "cancel_reason": self.cancel_reason,
            "order_id": self.result.order_id if self.result else None,
        }


@dataclass
class TradeOutcome:
    """What a confirm/cancel produced, phrased for the conversation."""
    trade: PendingTrade
    message: str
    submitted: bool = False
    order: Optional[OrderRequest] = None
    result: Optional[OrderResult] = None
    chips: List[Dict[str, str]] = field(default_factory=list)


def build_market_order(side: str, symbol: str, amount: Decimal) -> OrderRequest:
    """
    Build a market order with a fresh client_order_id.

    Buys carry quote_size (USD to spend), sells carry base_size (coins to sell).
    """
    size = format(amount, "f")
    side = side.upper()
    return OrderRequest(
        client_order_id=new_client_order_id(),
        product_id=to_product_id(symbol),
        side=side,
        quote_size=size if side == "BUY" else None,
        base_size=size if side == "SELL" else None,
    )


def build_order_request(intent: TradeIntent) -> OrderRequest:
    return build_market_order(intent.side, intent.symbol, intent.amount)


class TradeConfirmationWorkflow:
    """In-memory PROPOSED/CONFIRMED/CANCELLED state machine keyed by trade id."""

    def __init__(
        self,
        ttl_seconds: int = PENDING_TRADE_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        max_terminal: int = MAX_TERMINAL_TRADES,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_terminal = max_terminal
        self._clock = clock
        self._trades: Dict[str, PendingTrade] = {}

    def propose(self, intent: TradeIntent) -> PendingTrade:
        trade = PendingTrade(trade_id=new_id("trd_"), intent=intent, created_at=self._clock())
        self._trades[trade.trade_id] = trade
        logger.info(
            "Trade proposed: %s %s %s", intent.side, intent.amount, intent.symbol,
            extra={"trade_id": trade.trade_id},
        )
        return trade

    def get(self, trade_id: str) -> Optional[PendingTrade]:
        return self._trades.get(trade_id)

    def pending(self) -> List[PendingTrade]:
        return [t for t in self._trades.values() if t.state == TradeState.PROPOSED]

    def _prune_terminal(self) -> None:
        terminal = [tid for tid, t in self._trades.items() if t.state != TradeState.PROPOSED]
        for trade_id in terminal[:max(len(terminal) - self.max_terminal, 0)]:
            del self._trades[trade_id]

    def _take_proposed(self, trade_id: str) -> PendingTrade:
        trade = self._trades.get(trade_id)
        if trade is None:
            raise TradeStateError(f"Trade {trade_id} not found")
        if trade.state != TradeState.PROPOSED:
            raise TradeStateError(f"Trade {trade_id} is already {trade.state.value}")
        return trade

    def cancel(self, trade_id: str, reason: str = "user") -> TradeOutcome:
        trade = self._take_proposed(trade_id)
        trade.state = TradeState.CANCELLED
        trade.cancel_reason = reason
        self._prune_terminal()
        logger.info("Trade cancelled (%s)", reason, extra={"trade_id": trade_id})
        message = templates.TRADE_EXPIRED_MESSAGE if reason == "expired" else templates.TRADE_CANCELLED_MESSAGE
        return TradeOutcome(trade=trade, message=message)

    async def confirm(self, trade_id: str, broker: BrokerProvider) -> TradeOutcome:
        """Confirm a proposed trade and submit it once. Failures are not retried."""
        trade = self._take_proposed(trade_id)

        if trade.is_expired(self.ttl_seconds, self._clock()):
            return self.cancel(trade_id, reason="expired")

        # Terminal before any await: reentrant confirms hit TradeStateError
        trade.state = TradeState.CONFIRMED
        self._prune_terminal()
        order = build_order_request(trade.intent)
        trade.client_order_id = order.client_order_id

        try:
            result = await broker.place_order(order)
        except NexusError as e:
            logger.error("Order submission failed: %s", e.message, extra={"trade_id": trade_id})
            result = OrderResult(
                accepted=False,
                status="FAILED",
                http_status=e.status_code,
                error_detail=e.message,
            )
        trade.result = result

        intent = trade.intent
        if result.accepted:
            return TradeOutcome(
                trade=trade,
                message=templates.order_submitted_message(intent.side, intent.amount, intent.symbol, result.order_id),
                submitted=True,
                order=order,
                result=result,
                chips=list(templates.ORDER_SUBMITTED_CHIPS),
            )
        return TradeOutcome(
            trade=trade,
            message=templates.order_failed_message(result.error_detail),
            order=order,
            result=result,
        )
