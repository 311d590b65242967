"""
HTTP Prober.

Executes one probe (an attempt sequence with linear backoff) against a
check's target and classifies the outcome into a ProbeResult. The prober
has exactly one side effect, the network call; it never touches incident
or metric state.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp

from uptime_core.core.clock import SystemClock
from uptime_core.core.error_handling import ClassifiedError, ErrorCategory
from uptime_core.core.models import CheckDefinition, ProbeResult

logger = logging.getLogger(__name__)

# Mismatched bodies are truncated to this many characters in result details
CONTENT_PREVIEW_CHARS = 200


class HttpProber:
    """
    Probe HTTP endpoints with per-attempt timeouts and linear backoff.

    Attempts ``1 + check.retries`` requests. After a failed attempt ``n``
    it waits ``n * backoff_base`` seconds before the next one. The first
    successful attempt ends the sequence.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:4321",
        backoff_base: float = 1.0,
        clock: Optional[Any] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.backoff_base = backoff_base
        self._clock = clock or SystemClock()
        self._sleep = sleep or asyncio.sleep
        self._session = session
        self._owns_session = session is None

    def resolve_url(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        if not url.startswith("/"):
            url = "/" + url
        return f"{self.base_url}{url}"

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def probe(self, check: CheckDefinition, location: str = "local") -> ProbeResult:
        """Run the attempt sequence for ``check`` and return its outcome."""
        timestamp = self._clock.now()
        start = time.perf_counter()
        url = self.resolve_url(check.url)

        status_code: Optional[int] = None
        last_failure: Optional[ClassifiedError] = None
        details: Dict[str, Any] = {}
        attempts = 0
        max_attempts = 1 + check.retries

        while attempts < max_attempts:
            attempts += 1
            details = {}
            try:
                status_code, failure = await self._attempt(check, url, details)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                status_code = None
                failure = ClassifiedError.from_exception(e, {"url": url})

            if failure is None:
                latency_ms = (time.perf_counter() - start) * 1000
                if attempts > 1:
                    details["attempts"] = attempts
                return ProbeResult(
                    check_id=check.id,
                    timestamp=timestamp,
                    success=True,
                    response_time=latency_ms,
                    status_code=status_code,
                    location=location,
                    details=details,
                )

            last_failure = failure
            logger.debug(
                f"[Prober] {check.id} attempt {attempts}/{max_attempts} failed: "
                f"{failure.category.value} ({failure.message})"
            )

            if attempts < max_attempts:
                await self._sleep(attempts * self.backoff_base)

        latency_ms = (time.perf_counter() - start) * 1000
        details["attempts"] = attempts
        details["error_category"] = last_failure.category.value
        return ProbeResult(
            check_id=check.id,
            timestamp=timestamp,
            success=False,
            response_time=latency_ms,
            status_code=status_code,
            error=last_failure.message,
            location=location,
            details=details,
        )

    async def _attempt(
        self,
        check: CheckDefinition,
        url: str,
        details: Dict[str, Any],
    ) -> "tuple[int, Optional[ClassifiedError]]":
        """One request. Returns the status code and the failure, if any."""
        session = await self._get_session()
        async with session.request(
            check.method,
            url,
            headers=check.headers or None,
            data=check.body,
            timeout=aiohttp.ClientTimeout(total=check.timeout),
            allow_redirects=True,
        ) as response:
            status = response.status

            if status not in check.expected_status:
                details["unexpected_status"] = True
                details["expected_status"] = list(check.expected_status)
                details["actual_status"] = status
                return status, ClassifiedError(
                    category=ErrorCategory.UNEXPECTED_STATUS,
                    message=f"HTTP {status}",
                    is_retryable=True,
                )

            if check.expected_content:
                content = await response.text(errors="replace")
                if check.expected_content not in content:
                    details["content_mismatch"] = True
                    details["expected_content"] = check.expected_content
                    details["actual_content"] = content[:CONTENT_PREVIEW_CHARS]
                    return status, ClassifiedError(
                        category=ErrorCategory.CONTENT_MISMATCH,
                        message=f"Expected content not found: {check.expected_content!r}",
                        is_retryable=True,
                    )

            return status, None
