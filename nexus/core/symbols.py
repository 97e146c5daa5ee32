"""Symbol normalization utilities."""

QUOTE_CURRENCY = "USD"


def to_product_id(symbol: str) -> str:
    """
    Convert symbol to canonical product_id format (BASE-USD).

    Examples:
        "SOL" -> "SOL-USD"
        "SOL-USD" -> "SOL-USD"
        "btc" -> "BTC-USD"
    """
    symbol = symbol.upper().strip()
    if "-" in symbol:
        return symbol
    return f"{symbol}-{QUOTE_CURRENCY}"


def to_base(symbol: str) -> str:
    """
    Convert symbol to base asset (remove quote currency).

    Examples:
        "SOL-USD" -> "SOL"
        "SOL" -> "SOL"
    """
    symbol = symbol.upper().strip()
    if "-" in symbol:
        return symbol.split("-")[0]
    return symbol
