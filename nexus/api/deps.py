"""FastAPI dependencies."""
from typing import Optional

from fastapi import Depends

from nexus.core.config import Settings, get_settings
from nexus.core.errors import ConfigurationError, SigningError
from nexus.core.logging import get_logger
from nexus.providers.base import BrokerProvider
from nexus.providers.coinbase_provider import CoinbaseProvider
from nexus.providers.signers import build_signer
from nexus.providers.text_generation import TextGenerationClient
from nexus.services.assistant import AssistantSession
from nexus.services.assistant import get_session as _get_session

logger = get_logger(__name__)


def get_app_settings() -> Settings:
    return get_settings()


def get_broker(settings: Settings = Depends(get_app_settings)) -> BrokerProvider:
    """
    Coinbase provider for the configured auth scheme.

    Built per request so a credential change in the environment only needs
    a settings reset, and so a missing credential surfaces as a 500 with
    presence flags rather than a failed startup.
    """
    signer = build_signer(settings)
    return CoinbaseProvider(signer, base_url=settings.base_url, timeout=settings.http_timeout_seconds)


def get_optional_broker(settings: Settings = Depends(get_app_settings)) -> Optional[BrokerProvider]:
    """Same as get_broker, but None when credentials are missing."""
    try:
        return get_broker(settings)
    except (ConfigurationError, SigningError) as e:
        logger.info("Coinbase not connected: %s", e.message)
        return None


def get_text_client(settings: Settings = Depends(get_app_settings)) -> TextGenerationClient:
    return TextGenerationClient(
        api_key=settings.anthropic_api_key,
        base_url=settings.text_generation_base_url,
        model=settings.text_generation_model,
        max_tokens=settings.text_generation_max_tokens,
    )


def get_optional_text_client(settings: Settings = Depends(get_app_settings)) -> Optional[TextGenerationClient]:
    try:
        return get_text_client(settings)
    except ConfigurationError:
        return None


def get_assistant_session(settings: Settings = Depends(get_app_settings)) -> AssistantSession:
    return _get_session(settings.pending_trade_ttl_seconds)
