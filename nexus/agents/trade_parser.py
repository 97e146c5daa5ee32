"""Parser for trade directives embedded in assistant text.

The assistant is prompted to append a single-line directive such as::

    [TRADE: type=buy, symbol=BTC, amount=0.01, price=67240]

Directives are model-generated, so a malformed one is ignored rather than
reported: the caller simply gets no intent.
"""
import re
from decimal import Decimal, InvalidOperation
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

TRADE_DIRECTIVE_PATTERN = re.compile(
    r"\[TRADE:\s*type=(\w+),\s*symbol=(\w+),\s*amount=([\d.]+),\s*price=([\d.]+)\]"
)
# Anything that looks like a directive is stripped from display, valid or not
TRADE_MARKUP_PATTERN = re.compile(r"\[TRADE:[^\]]+\]")


class TradeIntent(BaseModel):
    """A parsed, not-yet-executed trade proposal."""

    model_config = ConfigDict(frozen=True)

    side: Literal["buy", "sell"]
    symbol: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    reference_price: Decimal = Field(..., gt=0)  # informational only

    @field_validator("side", mode="before")
    @classmethod
    def _lower_side(cls, v):
        return v.lower() if isinstance(v, str) else v

    @field_validator("symbol")
    @classmethod
    def _upper_symbol(cls, v: str) -> str:
        return v.upper()

    @field_validator("amount", "reference_price")
    @classmethod
    def _finite(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError("must be a finite decimal")
        return v

    @property
    def notional_estimate(self) -> Decimal:
        return self.amount * self.reference_price


class ParsedAssistantText(BaseModel):
    """Result of scanning one assistant response."""

    intent: Optional[TradeIntent] = None
    display_text: str = ""


def _parse_decimal(raw: str) -> Optional[Decimal]:
    try:
        return Decimal(raw)
    except InvalidOperation:
        return None


def extract_trade_intent(text: str) -> Optional[TradeIntent]:
    """First valid-shaped directive in text as a TradeIntent, or None."""
    if not text:
        return None
    match = TRADE_DIRECTIVE_PATTERN.search(text)
    if not match:
        return None

    side, symbol, amount_raw, price_raw = match.groups()
    amount = _parse_decimal(amount_raw)
    price = _parse_decimal(price_raw)
    if amount is None or price is None:
        return None

    try:
        return TradeIntent(side=side, symbol=symbol, amount=amount, reference_price=price)
    except ValidationError:
        return None


def strip_trade_markup(text: str) -> str:
    """Text with every [TRADE: ...] directive removed and outer whitespace trimmed."""
    return TRADE_MARKUP_PATTERN.sub("", text or "").strip()


def parse_trade_directive(text: str) -> ParsedAssistantText:
    """
    Split assistant text into an optional trade intent and display text.

    Pure function: the same text always yields the same intent and display text.

    Examples:
        "Buy some. [TRADE: type=buy, symbol=BTC, amount=0.01, price=67240]"
            -> intent(buy BTC 0.01 @ 67240), display_text "Buy some."
        "no directive here"
            -> no intent, display_text unchanged
    """
    return ParsedAssistantText(
        intent=extract_trade_intent(text),
        display_text=strip_trade_markup(text),
    )
