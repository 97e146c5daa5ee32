"""Configuration management."""
from dataclasses import dataclass, field
from typing import Optional, List
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

from nexus.core.env_utils import load_pem_from_path, normalize_pem
from nexus.core.errors import ConfigurationError, SigningError
from nexus.core.logging import get_logger

load_dotenv(override=False)

logger = get_logger(__name__)

DEFAULT_MARKET_PRODUCTS = (
    "BTC-USD,ETH-USD,SOL-USD,BNB-USD,XRP-USD,"
    "DOGE-USD,AVAX-USD,DOT-USD,LINK-USD,ADA-USD"
)


@dataclass(frozen=True)
class Credential:
    """Brokerage key id plus secret material (HMAC secret or PEM private key)."""
    key_id: str = field(repr=False)
    secret: str = field(repr=False)


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore"  # Ignore extra environment variables
    )

    # Coinbase Advanced Trade
    coinbase_auth_scheme: str = "hmac"  # "hmac" (CB-ACCESS-*) or "jwt" (CDP ES256)
    coinbase_api_host: str = "api.coinbase.com"

    # HMAC scheme
    coinbase_api_key: Optional[str] = None
    coinbase_api_secret: Optional[str] = None

    # CDP JWT scheme
    coinbase_api_key_name: Optional[str] = None
    coinbase_api_private_key: Optional[str] = None
    coinbase_api_private_key_path: Optional[str] = None  # Path to PEM file (recommended)

    # HTTP surface
    allowed_origin: str = "*"
    http_timeout_seconds: float = 10.0

    # Market / portfolio
    market_products: str = DEFAULT_MARKET_PRODUCTS
    stablecoins: str = "USD,USDC,USDT"

    # Trade confirmation (0 disables expiry)
    pending_trade_ttl_seconds: int = 300

    # Text generation (Anthropic Messages API)
    anthropic_api_key: Optional[str] = None
    text_generation_base_url: Optional[str] = None  # SDK default when unset
    text_generation_model: str = "claude-sonnet-4-20250514"
    text_generation_max_tokens: int = 1000

    log_level: str = "INFO"

    @property
    def market_products_list(self) -> List[str]:
        """Parse market product list into product ids."""
        return [p.strip().upper() for p in self.market_products.split(",") if p.strip()]

    @property
    def stablecoin_set(self) -> frozenset:
        return frozenset(s.strip().upper() for s in self.stablecoins.split(",") if s.strip())

    @property
    def base_url(self) -> str:
        return f"https://{self.coinbase_api_host}"

    def validate_auth_scheme(self) -> None:
        """Validate coinbase_auth_scheme. Called at startup."""
        if self.coinbase_auth_scheme.lower() not in ("hmac", "jwt"):
            raise ValueError(
                f"Invalid COINBASE_AUTH_SCHEME='{self.coinbase_auth_scheme}'. "
                f"Use 'hmac' or 'jwt'."
            )

    def credential_presence(self) -> dict:
        """Presence flags for the active scheme's credentials (never the values)."""
        def _present(value: Optional[str]) -> bool:
            return bool(value and value.strip())

        if self.coinbase_auth_scheme.lower() == "jwt":
            return {
                "hasKey": _present(self.coinbase_api_key_name),
                "hasSecret": _present(self.coinbase_api_private_key) or _present(self.coinbase_api_private_key_path),
            }
        return {
            "hasKey": _present(self.coinbase_api_key),
            "hasSecret": _present(self.coinbase_api_secret),
        }

    def coinbase_credential(self) -> Credential:
        """Load the credential for the configured scheme.

        Raises:
            ConfigurationError: If the key id or secret material is missing
            SigningError: If the private key is present but malformed
        """
        presence = self.credential_presence()
        if not (presence["hasKey"] and presence["hasSecret"]):
            raise ConfigurationError(
                "Coinbase credentials not configured",
                has_key=presence["hasKey"],
                has_secret=presence["hasSecret"],
            )

        if self.coinbase_auth_scheme.lower() == "jwt":
            try:
                if self.coinbase_api_private_key_path:
                    pem = load_pem_from_path(self.coinbase_api_private_key_path)
                else:
                    pem = normalize_pem(self.coinbase_api_private_key)
            except ValueError as e:
                # Key material is configured but unusable
                logger.error("Coinbase private key could not be loaded: %s", e)
                raise SigningError("Failed to sign request") from e
            return Credential(self.coinbase_api_key_name.strip(), pem)

        return Credential(self.coinbase_api_key.strip(), self.coinbase_api_secret.strip())


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get settings singleton."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton. Used for test isolation."""
    global _settings
    _settings = None
