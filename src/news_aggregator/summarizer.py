"""Article summaries: AI-generated with a deterministic template fallback."""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_chain,
    wait_fixed,
)

from news_aggregator.http_client import create_http_client, is_domestic_site

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "Summarize the following content in the language it is written in, "
    "in no more than 100 characters, highlighting the key points."
)

MAX_CONTENT_CHARS = 3000
TEMPLATE_SNIPPET_CHARS = 20
MAX_ATTEMPTS = 3
RETRY_DELAYS = (2, 4, 8)
PACING_DELAY = 1.0
REQUEST_TIMEOUT = 30.0

TEMPLATE_SUMMARY_MARKER = "This English-language piece centers on"


@dataclass
class SummaryConfig:
    """Remote text-generation endpoint settings (OpenAI-compatible)."""

    base_url: str
    api_key: str
    model: str

    @property
    def completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"


class SummaryError(Exception):
    """Raised when the remote summary could not be produced."""


class SummaryTransportError(SummaryError):
    """The request never got a response."""


class SummaryStatusError(SummaryError):
    """The endpoint answered with a non-success status."""


class SummaryResponseError(SummaryError):
    """The endpoint answered, but not with a usable completion."""


class SummaryEndpointError(SummaryError):
    """The configured endpoint URL cannot be requested at all."""


def template_summary(title: str, content: str) -> str:
    """Deterministic summary used when no AI summary is available."""
    snippet = content[:TEMPLATE_SNIPPET_CHARS]
    return (
        f"{TEMPLATE_SUMMARY_MARKER} '{title}', covering {snippet} among other "
        "key points. Click through for the full article."
    )


def _log_retry(retry_state: RetryCallState) -> None:
    logger.warning(
        "AI summary attempt %d/%d failed, retrying: %s",
        retry_state.attempt_number,
        MAX_ATTEMPTS,
        retry_state.outcome.exception(),
    )


class Summarizer:
    """Produces article summaries.

    With a ``SummaryConfig`` the remote endpoint is tried first (with retry
    and backoff), and consecutive remote calls are spaced by a fixed pacing
    delay. Without one, or when the remote call fails, the template is used.
    """

    def __init__(
        self,
        config: SummaryConfig | None = None,
        client_factory: Callable[[bool], httpx.Client] = create_http_client,
        sleep: Callable[[float], None] = time.sleep,
        pacing_delay: float = PACING_DELAY,
    ):
        self.config = config
        self._client_factory = client_factory
        self._sleep = sleep
        self._pacing_delay = pacing_delay
        self._pace_lock = threading.Lock()
        self._has_called = False

    @property
    def remote_enabled(self) -> bool:
        return self.config is not None

    def summarize(self, title: str, content: str) -> str:
        """Return a summary for an article. Never raises."""
        if not self.remote_enabled:
            return template_summary(title, content)

        self._pace()
        try:
            return self.generate(title, content)
        except SummaryError as e:
            logger.warning("AI summary failed for '%s', using template: %s", title, e)
            return template_summary(title, content)

    def generate(self, title: str, content: str) -> str:
        """Call the remote endpoint, retrying transport and status failures.

        Raises:
            SummaryError: When all attempts fail or the response is unusable.
        """
        if self.config is None:
            raise SummaryError("No AI endpoint configured")

        body = {
            "model": self.config.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": f"Title: {title}\n\nContent: {content[:MAX_CONTENT_CHARS]}",
                },
            ],
            "max_tokens": 200,
        }

        retrying = Retrying(
            retry=retry_if_exception_type((SummaryTransportError, SummaryStatusError)),
            stop=stop_after_attempt(MAX_ATTEMPTS),
            wait=wait_chain(*[wait_fixed(delay) for delay in RETRY_DELAYS]),
            sleep=self._sleep,
            before_sleep=_log_retry,
            reraise=True,
        )
        use_proxy = not is_domestic_site(self.config.base_url)
        with self._client_factory(use_proxy) as client:
            return retrying(self._post, client, body)

    def _post(self, client: httpx.Client, body: dict) -> str:
        try:
            response = client.post(
                self.config.completions_url,
                headers={"Authorization": f"Bearer {self.config.api_key}"},
                json=body,
                timeout=REQUEST_TIMEOUT,
            )
        except (httpx.InvalidURL, httpx.UnsupportedProtocol, ValueError) as e:
            raise SummaryEndpointError(
                f"Invalid API endpoint '{self.config.base_url}': {e}"
            ) from e
        except httpx.HTTPError as e:
            raise SummaryTransportError(f"API request failed: {e}") from e

        if not response.is_success:
            raise SummaryStatusError(
                f"API returned error ({response.status_code}): {response.text}"
            )

        try:
            summary = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise SummaryResponseError(f"Malformed API response: {e}") from e
        if not isinstance(summary, str):
            raise SummaryResponseError("Malformed API response: content is not text")
        return summary.strip()

    def _pace(self) -> None:
        with self._pace_lock:
            if self._has_called:
                self._sleep(self._pacing_delay)
            self._has_called = True
