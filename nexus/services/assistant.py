"""Single-user assistant session: transcript, trade proposals, confirmations.

The transcript sent to the text-generation service is append-only and lives
for the lifetime of the session; DELETE /session starts a fresh one.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from nexus.agents import response_templates as templates
from nexus.agents.trade_parser import parse_trade_directive
from nexus.core.errors import NexusError, ValidationError
from nexus.core.logging import get_logger
from nexus.providers.base import BrokerProvider
from nexus.providers.text_generation import TextGenerationClient, extract_text
from nexus.services.portfolio import DEFAULT_STABLECOINS, fetch_portfolio
from nexus.services.trade_confirmation import PendingTrade, TradeConfirmationWorkflow, TradeOutcome

logger = get_logger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class AssistantReply:
    text: str
    chips: List[Dict[str, str]] = field(default_factory=list)
    trade: Optional[PendingTrade] = None
    error: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": "assistant",
            "text": self.text,
            "chips": self.chips,
            "trade": self.trade.to_dict() if self.trade else None,
            "error": self.error,
        }


async def portfolio_context(
    broker: Optional[BrokerProvider],
    stablecoins: frozenset = DEFAULT_STABLECOINS,
) -> Tuple[List[Dict[str, Any]], float, bool]:
    """Holdings with 24h change for the system prompt. Falls back to an empty, disconnected view."""
    if broker is None:
        return [], 0.0, False
    try:
        valuation = await fetch_portfolio(broker, stablecoins)
    except NexusError as e:
        logger.warning("Portfolio unavailable for system prompt: %s", e.message)
        return [], 0.0, False
    holdings = [h.to_dict() for h in valuation.holdings]

    priced = [h["symbol"] for h in holdings if h["symbol"] not in stablecoins]
    if priced:
        try:
            tickers = await broker.list_products(priced)
        except NexusError as e:
            logger.warning("24h change unavailable for system prompt: %s", e.message)
        else:
            changes = {t.symbol: t.change_24h for t in tickers}
            for h in holdings:
                if h["symbol"] in changes:
                    h["change"] = changes[h["symbol"]]

    return holdings, float(valuation.total_value), True


class AssistantSession:
    """Conversation state for the one dashboard user."""

    def __init__(self, workflow: Optional[TradeConfirmationWorkflow] = None):
        self.workflow = workflow or TradeConfirmationWorkflow()
        self.transcript: List[Dict[str, str]] = []
        self.events: List[Dict[str, Any]] = [
            {"role": "assistant", "text": templates.GREETING, "ts": _now_iso()}
        ]
        self._lock = asyncio.Lock()

    def _record(self, role: str, text: str, **extra) -> None:
        self.events.append({"role": role, "text": text, "ts": _now_iso(), **extra})

    async def send_message(self, text: str, llm: Optional[TextGenerationClient], system_prompt: str) -> AssistantReply:
        """Send one user turn, parse any trade directive out of the reply."""
        if not text or not text.strip():
            raise ValidationError("Message text is required")

        # One turn at a time; the transcript is never mutated concurrently
        async with self._lock:
            self.transcript.append({"role": "user", "content": text})
            self._record("user", text)

            try:
                if llm is None:
                    raise NexusError("Text generation is not configured")
                status, data = await llm.create_message(system_prompt, self.transcript)
                if status >= 400:
                    raise NexusError(f"Text generation returned HTTP {status}")
            except NexusError as e:
                logger.error("Assistant reply failed: %s", e.message)
                self._record("assistant", templates.SERVER_UNREACHABLE_MESSAGE, error=True)
                return AssistantReply(text=templates.SERVER_UNREACHABLE_MESSAGE, error=True)

            raw_text = extract_text(data) or templates.EMPTY_REPLY_FALLBACK
            self.transcript.append({"role": "assistant", "content": raw_text})

            parsed = parse_trade_directive(raw_text)
            trade = self.workflow.propose(parsed.intent) if parsed.intent else None
            reply = AssistantReply(
                text=parsed.display_text,
                chips=templates.suggestion_chips(raw_text, has_trade=trade is not None),
                trade=trade,
            )
            self._record("assistant", reply.text, trade_id=trade.trade_id if trade else None)
            return reply

    async def confirm_trade(self, trade_id: str, broker: BrokerProvider) -> TradeOutcome:
        outcome = await self.workflow.confirm(trade_id, broker)
        self._record("assistant", outcome.message, trade_id=trade_id)
        return outcome

    def cancel_trade(self, trade_id: str) -> TradeOutcome:
        outcome = self.workflow.cancel(trade_id)
        self._record("assistant", outcome.message, trade_id=trade_id)
        return outcome

    def to_dict(self) -> Dict[str, Any]:
        return {
            "messages": list(self.events),
            "pending_trades": [t.to_dict() for t in self.workflow.pending()],
        }


_session: Optional[AssistantSession] = None


def get_session(ttl_seconds: Optional[int] = None) -> AssistantSession:
    """Get the session singleton."""
    global _session
    if _session is None:
        workflow = TradeConfirmationWorkflow(ttl_seconds) if ttl_seconds is not None else None
        _session = AssistantSession(workflow)
    return _session


def reset_session() -> None:
    """Drop the current session; the next access starts a fresh transcript."""
    global _session
    _session = None
