"""Assistant-side message templates and the system prompt."""
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

GREETING = """**Welcome to your Crypto Command Center.**

I can help with:
**Portfolio Analysis** - Holdings, allocation and risk
**Market Intelligence** - Live prices and 24h moves
**Trade Execution** - Buy/sell orders with confirmation

What would you like to do?"""


def _fmt_money(value) -> str:
    return f"{float(value):,.2f}"


def _fmt_amount(value) -> str:
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    return str(value)


def build_system_prompt(
    holdings: Sequence[Dict],
    total_value: float,
    connected: bool,
) -> str:
    """System prompt carrying the live portfolio and the trade directive contract."""
    lines = []
    for h in holdings:
        change = h.get("change")
        change_txt = f" ({'+' if change > 0 else ''}{change:.2f}% 24h)" if change is not None else ""
        lines.append(f"{h['symbol']}: {h['amount']} units @ ${_fmt_money(h['price'])}{change_txt}")
    holdings_txt = ", ".join(lines) if lines else "none"

    return f"""You are an expert AI crypto portfolio manager and trading agent integrated with Coinbase.

LIVE PORTFOLIO:
- Total Value: ${float(total_value):,.0f}
- Holdings: {holdings_txt}
- Exchange: Coinbase Advanced Trade
- Connected: {"Yes" if connected else "No"}

CAPABILITIES:
1. ANALYSIS: Technical, fundamental, and sentiment analysis
2. STRATEGY: DCA, momentum, mean-reversion, hedging strategies
3. EXECUTION: Suggest trades - always confirm before executing via [TRADE: type=buy|sell, symbol=XXX, amount=N, price=CURRENT_PRICE]
4. ALERTS: Flag risks, opportunities, and portfolio imbalances

For a buy, amount is the USD amount to spend. For a sell, amount is the number of coins to sell.
Format trade triggers like: [TRADE: type=buy, symbol=BTC, amount=100, price=67240]

Be professional, data-driven, and concise. Use **bold** for emphasis. Always confirm before executing trades."""


def suggestion_chips(raw_text: str, has_trade: bool) -> List[Dict[str, str]]:
    """Follow-up chips offered under an assistant reply."""
    lowered = (raw_text or "").lower()
    chips = []
    if "buy" in lowered:
        chips.append({"label": "Show more analysis", "variant": ""})
    if "risk" in lowered:
        chips.append({"label": "Hedge my portfolio", "variant": "warn"})
    if has_trade:
        chips.append({"label": "Confirm trade", "variant": "buy"})
        chips.append({"label": "Cancel", "variant": "sell"})
    return chips


def order_submitted_message(side: str, amount, symbol: str, order_id: Optional[str]) -> str:
    return (
        f"**Order submitted successfully.** Your {side} order for **{_fmt_amount(amount)} {symbol}** "
        f"has been placed on Coinbase.\n\n"
        f"Order ID: `{order_id or 'pending'}`\n\n"
        f"Would you like to set a stop-loss or price alert for this position?"
    )


ORDER_SUBMITTED_CHIPS = [
    {"label": "Set stop-loss", "variant": "warn"},
    {"label": "Set price alert", "variant": ""},
]


def order_failed_message(detail: Optional[str] = None) -> str:
    text = "**Trade could not be executed.** Please check your Coinbase API permissions and try again."
    if detail:
        text += f"\n\nCoinbase said: {detail}"
    return text


TRADE_CANCELLED_MESSAGE = (
    "Trade cancelled. Your portfolio is unchanged. "
    "Let me know if you would like to explore other opportunities."
)

TRADE_EXPIRED_MESSAGE = (
    "That trade proposal has expired because prices may have moved. "
    "Ask me again for a fresh quote."
)

SERVER_UNREACHABLE_MESSAGE = (
    "Could not reach the server. Please check your deployment and environment variables."
)

EMPTY_REPLY_FALLBACK = "I encountered an error. Please try again."
