"""OpenAI-compatible chat-completions client for snapshot generation.

The client performs one request per ``summarize`` call. Deadlines and user
cancellation are enforced from outside by cancelling the awaiting task; an
``asyncio.CancelledError`` raised inside the request aborts the transport and
is always re-raised.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from chatrelay.core.errors import RemoteCallFailure
from chatrelay.core.remote.models import RemoteConfig
from chatrelay.core.remote.prompts import SNAPSHOT_SYSTEM_PROMPT, build_user_content
from chatrelay.core.remote.shared import extract_error_message, redact_secrets

logger = logging.getLogger(__name__)

SUMMARY_TEMPERATURE = 0.1

_RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class SummarizationClient:
    """Sends budgeted conversation text to a remote model and returns its summary.

    Example:
        client = SummarizationClient(RemoteConfig.from_provider("openai", key))
        summary = await client.summarize(content)
    """

    def __init__(self, config: RemoteConfig, *, timeout: Optional[float] = None):
        """
        Args:
            config: Endpoint, credential and model
            timeout: Transport-level timeout in seconds; None leaves the
                deadline to the caller
        """
        self.config = config
        self._timeout = timeout

    def build_payload(self, content: str) -> Dict[str, Any]:
        return {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": SNAPSHOT_SYSTEM_PROMPT},
                {"role": "user", "content": build_user_content(content)},
            ],
            "temperature": SUMMARY_TEMPERATURE,
        }

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.config.credential}",
        }

    async def summarize(self, content: str) -> str:
        """Request a context snapshot for ``content``.

        Raises:
            RemoteCallFailure: On transport errors, non-2xx responses or a
                malformed response body
        """
        url = self.config.completions_url
        payload = self.build_payload(content)

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload, headers=self._headers())
        except httpx.TimeoutException as exc:
            raise RemoteCallFailure("Request to summarization endpoint timed out", retryable=True) from exc
        except httpx.RequestError as exc:
            message = redact_secrets(f"Request failed: {exc}", known_secret=self.config.credential)
            raise RemoteCallFailure(message, retryable=True) from exc

        if not 200 <= response.status_code < 300:
            message = extract_error_message(response)
            logger.debug("Summarization endpoint returned %s: %s", response.status_code, message)
            raise RemoteCallFailure(
                message,
                status_code=response.status_code,
                retryable=response.status_code in _RETRYABLE_STATUS_CODES,
            )

        return self._parse_summary(response)

    def _parse_summary(self, response: httpx.Response) -> str:
        try:
            data = response.json()
            summary = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise RemoteCallFailure(
                "Malformed response from summarization endpoint",
                status_code=response.status_code,
            ) from exc

        if not isinstance(summary, str) or not summary.strip():
            raise RemoteCallFailure(
                "Summarization endpoint returned an empty summary",
                status_code=response.status_code,
            )
        return summary
