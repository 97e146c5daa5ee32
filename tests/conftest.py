"""Shared pytest fixtures for the test suite.

Provides:
- Test environment (HMAC credentials, text-generation key) set before imports
- Settings/session singleton isolation
- Credential fixtures, including a fresh EC P-256 key for the JWT scheme
- httpx.MockTransport-backed Coinbase provider factory
- An in-memory FakeBroker for service-level tests
"""
import os
import sys
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, List, Optional

import httpx
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Set test environment variables early (BEFORE nexus imports)
os.environ["COINBASE_AUTH_SCHEME"] = "hmac"
os.environ["COINBASE_API_KEY"] = "test-key"
os.environ["COINBASE_API_SECRET"] = "test-secret"
os.environ["ANTHROPIC_API_KEY"] = "sk-ant-REDACTED"
os.environ["PENDING_TRADE_TTL_SECONDS"] = "300"
os.environ.pop("COINBASE_API_KEY_NAME", None)
os.environ.pop("COINBASE_API_PRIVATE_KEY", None)
os.environ.pop("COINBASE_API_PRIVATE_KEY_PATH", None)

from nexus.core.config import Credential, reset_settings  # noqa: E402
from nexus.providers.base import (  # noqa: E402
    Account,
    Balance,
    BrokerProvider,
    OrderRequest,
    OrderResult,
    PriceQuote,
    ProductTicker,
)
from nexus.providers.coinbase_provider import CoinbaseProvider  # noqa: E402
from nexus.providers.signers import HmacSigner  # noqa: E402
from nexus.services.assistant import reset_session  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_singletons():
    """Reset settings and the assistant session so env changes take effect."""
    reset_settings()
    reset_session()
    yield
    reset_settings()
    reset_session()


# === CREDENTIAL FIXTURES ===

@pytest.fixture
def hmac_credential() -> Credential:
    return Credential("test-key", "test-secret")


@pytest.fixture
def ec_private_key():
    return ec.generate_private_key(ec.SECP256R1())


@pytest.fixture
def ec_private_key_pem(ec_private_key) -> str:
    return ec_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture
def jwt_credential(ec_private_key_pem) -> Credential:
    return Credential("organizations/org-1/apiKeys/key-1", ec_private_key_pem)


# === COINBASE HTTP MOCKING ===

@pytest.fixture
def make_provider(hmac_credential) -> Callable[[Callable[[httpx.Request], httpx.Response]], CoinbaseProvider]:
    """Build a CoinbaseProvider whose HTTP calls go to `handler`."""
    def _make(handler: Callable[[httpx.Request], httpx.Response]) -> CoinbaseProvider:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return CoinbaseProvider(
            HmacSigner(hmac_credential),
            base_url="https://api.coinbase.com",
            timeout=5.0,
            client=client,
        )
    return _make


# === IN-MEMORY BROKER ===

def make_account(currency: str, value: str, name: Optional[str] = None) -> Account:
    return Account(
        currency=currency,
        name=name or f"{currency} Wallet",
        available_balance=Balance(value=Decimal(value), currency=currency),
    )


class FakeBroker(BrokerProvider):
    """Broker double: canned accounts/prices, records every order."""

    def __init__(
        self,
        accounts: Optional[List[Account]] = None,
        prices: Optional[Dict[str, object]] = None,
        tickers: Optional[List[ProductTicker]] = None,
        order_result: Optional[OrderResult] = None,
        order_error: Optional[Exception] = None,
    ):
        self.accounts = accounts or []
        self.prices = prices or {}
        self.tickers = tickers or []
        self.order_result = order_result or OrderResult(
            accepted=True, status="pending", http_status=200, order_id="order-123"
        )
        self.order_error = order_error
        self.orders: List[OrderRequest] = []
        self.price_calls: List[str] = []
        self.requested_products: List[List[str]] = []

    async def list_products(self, product_ids):
        self.requested_products.append(list(product_ids))
        return self.tickers

    async def list_accounts(self):
        return self.accounts

    async def get_best_ask(self, symbol):
        self.price_calls.append(symbol)
        price = self.prices.get(symbol)
        if isinstance(price, Exception):
            raise price
        return PriceQuote(symbol=symbol, best_ask=Decimal(str(price or 0)))

    async def place_order(self, order):
        self.orders.append(order)
        if self.order_error is not None:
            raise self.order_error
        return self.order_result


@pytest.fixture
def fake_broker() -> FakeBroker:
    return FakeBroker()
