"""Portfolio valuation from account balances and best-ask prices."""
import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from nexus.core.logging import get_logger
from nexus.providers.base import Account, BrokerProvider, PriceQuote

logger = get_logger(__name__)

DEFAULT_STABLECOINS = frozenset({"USD", "USDC", "USDT"})


@dataclass(frozen=True)
class Holding:
    symbol: str
    name: str
    amount: Decimal
    unit_price: Decimal

    @property
    def total_value(self) -> Decimal:
        return self.amount * self.unit_price

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "amount": float(self.amount),
            "price": float(self.unit_price),
            "value": float(self.total_value),
        }


@dataclass(frozen=True)
class PortfolioValuation:
    holdings: Tuple[Holding, ...]
    warnings: Tuple[str, ...] = ()

    @property
    def total_value(self) -> Decimal:
        return sum((h.total_value for h in self.holdings), Decimal("0"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "portfolio": [h.to_dict() for h in self.holdings],
            "totalValue": float(self.total_value),
        }


def held_accounts(accounts: Iterable[Account]) -> List[Account]:
    """Accounts with a strictly positive available balance."""
    return [a for a in accounts if a.has_balance]


def symbols_to_price(accounts: Iterable[Account], stablecoins: frozenset = DEFAULT_STABLECOINS) -> List[str]:
    """Held, non-stable symbols that need a market quote (deduplicated, in order)."""
    seen = []
    for a in held_accounts(accounts):
        symbol = a.currency.upper()
        if symbol not in stablecoins and symbol not in seen:
            seen.append(symbol)
    return seen


def value_holdings(
    accounts: Iterable[Account],
    prices: Mapping[str, Decimal],
    stablecoins: frozenset = DEFAULT_STABLECOINS,
    warnings: Tuple[str, ...] = (),
) -> PortfolioValuation:
    """
    Value each positive-balance account.

    Stablecoins are priced at 1; anything else uses prices[symbol] and falls
    back to 0 when the lookup failed or returned nothing.
    """
    holdings = []
    for account in held_accounts(accounts):
        symbol = account.currency.upper()
        if symbol in stablecoins:
            unit_price = Decimal("1")
        else:
            unit_price = prices.get(symbol) or Decimal("0")
        holdings.append(Holding(
            symbol=symbol,
            name=account.name,
            amount=account.available_balance.value,
            unit_price=unit_price,
        ))
    return PortfolioValuation(holdings=tuple(holdings), warnings=tuple(warnings))


async def fetch_prices(broker: BrokerProvider, symbols: List[str]) -> Tuple[Dict[str, Decimal], List[str]]:
    """Fan out best-ask lookups concurrently; failed lookups are reported, not raised."""
    results = await asyncio.gather(*(broker.get_best_ask(s) for s in symbols), return_exceptions=True)

    prices: Dict[str, Decimal] = {}
    warnings: List[str] = []
    for symbol, result in zip(symbols, results):
        if isinstance(result, PriceQuote):
            prices[symbol] = result.best_ask
        else:
            logger.warning("Failed to fetch price for %s: %s", symbol, type(result).__name__)
            warnings.append(f"Could not fetch price for {symbol}")
            prices[symbol] = Decimal("0")
    return prices, warnings


async def fetch_portfolio(
    broker: BrokerProvider,
    stablecoins: Optional[frozenset] = None,
) -> PortfolioValuation:
    """Accounts -> concurrent best asks -> valuation."""
    stablecoins = stablecoins if stablecoins is not None else DEFAULT_STABLECOINS
    accounts = await broker.list_accounts()
    symbols = symbols_to_price(accounts, stablecoins)
    prices, warnings = await fetch_prices(broker, symbols)
    return value_holdings(accounts, prices, stablecoins, tuple(warnings))
