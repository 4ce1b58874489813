"""
Installer fetcher — resilient download of the toolchain installer script.

Retry policy
------------
One *attempt* walks the whole endpoint list in declared order (the first
URL is the primary, the rest are mirrors) and returns on the first
success.  When every endpoint fails, the fetcher sleeps ``2**attempt``
seconds and starts the next attempt.  There is no sleep after the last
attempt, so with ``max_attempts = n`` the total backoff is
``2**0 + 2**1 + ... + 2**(n-2)`` seconds before ``FetchExhausted``.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import httpx

from build_matrix import __version__
from build_matrix.errors import FetchExhausted

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = f"build-matrix/{__version__}"
INSTALLER_FILENAME = "install.sh"


@dataclass
class RetryState:
    """Bookkeeping for one fetch call."""
    attempt_index: int = 0
    max_attempts: int = 5
    backoff_seconds: float = 0.0  # total time spent sleeping so far

    def next_delay(self) -> float:
        return float(2 ** self.attempt_index)

    @property
    def exhausted(self) -> bool:
        return self.attempt_index >= self.max_attempts - 1


@dataclass
class FetchedInstaller:
    """A downloaded installer script and where it came from."""
    path: Path
    content: bytes
    endpoint: str
    attempts: int


class InstallerFetcher:
    """
    Download an installer script with bounded retries and mirror failover.

    ``client`` and ``sleep`` are injectable so the retry loop can be
    exercised without network access or real waiting.
    """

    def __init__(
        self,
        endpoints: List[str],
        max_attempts: int = 5,
        timeout: float = 30.0,
        scratch_dir: Optional[Path] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not endpoints:
            raise ValueError("at least one installer endpoint is required")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.endpoints = list(endpoints)
        self.max_attempts = max_attempts
        self.timeout = timeout
        self.scratch_dir = Path(scratch_dir) if scratch_dir else Path.cwd()
        self.user_agent = user_agent
        self._client = client
        self._sleep = sleep

    def _try_endpoint(self, client: httpx.Client, url: str) -> bytes:
        resp = client.get(
            url,
            headers={"User-Agent": self.user_agent},
            timeout=self.timeout,
            follow_redirects=True,
        )
        resp.raise_for_status()
        if not resp.content:
            raise httpx.HTTPError(f"empty response body from {url}")
        return resp.content

    def _write_scratch(self, content: bytes) -> Path:
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        path = self.scratch_dir / INSTALLER_FILENAME
        path.write_bytes(content)
        path.chmod(0o755)
        return path

    def fetch(self) -> FetchedInstaller:
        """Run the retry loop; raise ``FetchExhausted`` when it runs dry."""
        own_client = self._client is None
        client = self._client or httpx.Client()
        state = RetryState(max_attempts=self.max_attempts)
        last_error: Optional[str] = None

        try:
            while True:
                for url in self.endpoints:
                    logger.info(
                        "Fetching installer from %s (attempt %d/%d)",
                        url, state.attempt_index + 1, state.max_attempts,
                    )
                    try:
                        content = self._try_endpoint(client, url)
                    except httpx.HTTPError as e:
                        last_error = f"{url}: {e}"
                        logger.warning("Installer download failed: %s", last_error)
                        continue

                    path = self._write_scratch(content)
                    logger.info("Installer saved to %s (%d bytes)", path, len(content))
                    return FetchedInstaller(
                        path=path,
                        content=content,
                        endpoint=url,
                        attempts=state.attempt_index + 1,
                    )

                if state.exhausted:
                    break

                delay = state.next_delay()
                logger.info("All endpoints failed; retrying in %.0fs", delay)
                self._sleep(delay)
                state.backoff_seconds += delay
                state.attempt_index += 1
        finally:
            if own_client:
                client.close()

        logger.error(
            "Installer unavailable after %d attempt(s), %.0fs spent in backoff",
            state.max_attempts, state.backoff_seconds,
        )
        raise FetchExhausted(self.endpoints, state.max_attempts, last_error, state.backoff_seconds)


def fetch_installer(
    endpoints: List[str],
    max_attempts: int = 5,
    timeout_per_attempt: float = 30.0,
    scratch_dir: Optional[Path] = None,
    **kwargs,
) -> bytes:
    """Convenience wrapper returning only the installer bytes."""
    fetcher = InstallerFetcher(
        endpoints,
        max_attempts=max_attempts,
        timeout=timeout_per_attempt,
        scratch_dir=scratch_dir,
        **kwargs,
    )
    return fetcher.fetch().content
