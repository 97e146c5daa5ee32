"""Base provider interface and brokerage data types."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence


@dataclass(frozen=True)
class Balance:
    value: Decimal
    currency: str


@dataclass(frozen=True)
class Account:
    """Exchange account, read-only from this service's perspective."""
    currency: str
    name: str
    available_balance: Balance

    @property
    def has_balance(self) -> bool:
        return self.available_balance.value > 0


@dataclass(frozen=True)
class PriceQuote:
    """Best ask as of the call that fetched it."""
    symbol: str
    best_ask: Decimal


@dataclass(frozen=True)
class ProductTicker:
    symbol: str
    price: float
    change_24h: float
    volume_24h: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "price": self.price,
            "change": self.change_24h,
            "volume": self.volume_24h,
        }


@dataclass(frozen=True)
class OrderRequest:
    """Market IOC order. Buys are sized in quote (USD), sells in base units."""
    client_order_id: str
    product_id: str
    side: str  # "BUY" or "SELL"
    quote_size: Optional[str] = None
    base_size: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        sizing = {"quote_size": self.quote_size} if self.side == "BUY" else {"base_size": self.base_size}
        return {
            "client_order_id": self.client_order_id,
            "product_id": self.product_id,
            "side": self.side,
            "order_configuration": {"market_market_ioc": sizing},
        }


@dataclass(frozen=True)
class OrderResult:
    accepted: bool
    status: str
    http_status: int
    order_id: Optional[str] = None
    error_detail: Optional[str] = None
    raw: Optional[Any] = None


class BrokerProvider(ABC):
    """Abstract base class for broker providers."""

    @abstractmethod
    async def list_products(self, product_ids: Sequence[str]) -> List[ProductTicker]:
        """Ticker snapshot for the given product ids."""

    @abstractmethod
    async def list_accounts(self) -> List[Account]:
        """All brokerage accounts, including empty ones."""

    @abstractmethod
    async def get_best_ask(self, symbol: str) -> PriceQuote:
        """Best ask for SYMBOL-USD; zero when the book has no ask."""

    @abstractmethod
    async def place_order(self, order: OrderRequest) -> OrderResult:
        """Submit one order. Never retried."""
