"""Client for the text-generation service (Anthropic Messages API)."""
from typing import Any, Dict, List, Optional, Tuple

import httpx
from anthropic import NOT_GIVEN, APIConnectionError, APIStatusError, APITimeoutError, AsyncAnthropic

from nexus.core.errors import ConfigurationError, NetworkError, UpstreamMalformedResponse
from nexus.core.logging import get_logger

logger = get_logger(__name__)


class TextGenerationClient:
    """Forwards {system, messages} and returns the provider's JSON untouched."""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: Optional[str] = None,
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 1000,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key or not api_key.strip():
            raise ConfigurationError("Text generation API key not configured", has_key=False, has_secret=False)
        self.model = model
        self.max_tokens = max_tokens
        # No SDK retries: one user turn is one upstream call
        self._client = AsyncAnthropic(
            api_key=api_key.strip(),
            base_url=base_url or None,
            timeout=timeout,
            max_retries=0,
            http_client=client,
        )

    async def create_message(self, system: str, messages: List[Dict[str, Any]]) -> Tuple[int, Any]:
        """POST one completion request. Returns (status_code, parsed JSON body).

        Upstream error statuses are returned, not raised, so callers can relay them.
        """
        try:
            raw = await self._client.messages.with_raw_response.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system or NOT_GIVEN,
                messages=[{"role": m["role"], "content": m["content"]} for m in messages],
            )
            response = raw.http_response
        except APIStatusError as e:
            logger.warning("Text generation returned %d", e.status_code)
            response = e.response
        except APITimeoutError as e:
            logger.warning("Text generation request timed out")
            raise NetworkError("Text generation request timed out") from e
        except APIConnectionError as e:
            logger.warning("Text generation request failed: %s", type(e).__name__)
            raise NetworkError("Failed to reach the text generation service") from e

        try:
            data = response.json()
        except ValueError:
            raise UpstreamMalformedResponse(response.text, message="Text generation service returned invalid JSON")
        return response.status_code, data


def extract_text(data: Any) -> Optional[str]:
    """First text block of a Messages API response, if any."""
    if not isinstance(data, dict):
        return None
    for block in data.get("content") or []:
        if isinstance(block, dict) and block.get("type", "text") == "text" and block.get("text"):
            return block["text"]
    return None
