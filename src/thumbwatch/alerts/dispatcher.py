"""
Alert Dispatcher
================

Best-effort webhook delivery decoupled from the request path.

This dispatcher:
    - Accepts alerts through a non-blocking submit()
    - Buffers them in a bounded queue (drops oldest on overflow)
    - Delivers from a single background worker with httpx
    - Retries failed deliveries with exponential backoff
    - Opens a circuit breaker after consecutive failed deliveries

Design Rules:
    - submit() never blocks and never raises
    - Delivery failures are logged, never surfaced to the submitter
    - Disabled entirely when no webhook URL is configured
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional

import httpx

from thumbwatch.models.output import AlertPayload


logger = logging.getLogger(__name__)


class AlertDeliveryError(Exception):
    """Raised when a single delivery attempt fails."""
    pass


class DispatcherMetrics:
    """Metrics for AlertDispatcher observability."""

    __slots__ = (
        "submitted",
        "delivered",
        "failed",
        "dropped",
        "breaker_rejections",
        "breaker_opened",
    )

    def __init__(self) -> None:
        self.submitted: int = 0
        self.delivered: int = 0
        self.failed: int = 0
        self.dropped: int = 0
        self.breaker_rejections: int = 0
        self.breaker_opened: int = 0

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "submitted": self.submitted,
            "delivered": self.delivered,
            "failed": self.failed,
            "dropped": self.dropped,
            "breaker_rejections": self.breaker_rejections,
            "breaker_opened": self.breaker_opened,
        }


class AlertDispatcher:
    """
    Background webhook notifier.

    Example:
        dispatcher = AlertDispatcher(webhook_url="https://hooks.example/alerts")
        task = asyncio.create_task(dispatcher.run())

        dispatcher.submit(payload)   # returns immediately

        await dispatcher.stop()
        await task
    """

    def __init__(
        self,
        webhook_url: Optional[str],
        timeout_seconds: float = 5.0,
        max_queue_size: int = 100,
        max_attempts: int = 3,
        backoff_base_seconds: float = 0.5,
        breaker_threshold: int = 5,
        breaker_reset_seconds: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize alert dispatcher.

        Args:
            webhook_url: Endpoint to POST alerts to (None disables alerting)
            timeout_seconds: Per-request timeout
            max_queue_size: Pending alert capacity
            max_attempts: Delivery attempts per alert
            backoff_base_seconds: Delay before the 2nd attempt; doubles after
            breaker_threshold: Consecutive failed deliveries that open the breaker
            breaker_reset_seconds: How long the breaker stays open
            client: Pre-built httpx client (tests)
            sleep: Backoff sleep function (tests)
            clock: Monotonic clock (tests)
        """
        if max_queue_size < 1:
            raise ValueError("max_queue_size must be >= 1")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        self.webhook_url = webhook_url
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.backoff_base_seconds = backoff_base_seconds
        self.breaker_threshold = breaker_threshold
        self.breaker_reset_seconds = breaker_reset_seconds

        self._queue: asyncio.Queue[AlertPayload] = asyncio.Queue(maxsize=max_queue_size)
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep
        self._clock = clock

        self._running: bool = False

        self._consecutive_failures: int = 0
        self._breaker_open_until: Optional[float] = None

        self.metrics = DispatcherMetrics()

        if webhook_url:
            logger.info(f"AlertDispatcher initialized: url={webhook_url}")
        else:
            logger.info("AlertDispatcher disabled: no webhook URL configured")

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def breaker_open(self) -> bool:
        if self._breaker_open_until is None:
            return False
        if self._clock() >= self._breaker_open_until:
            # Half-open: let the next delivery test the endpoint
            self._breaker_open_until = None
            return False
        return True

    def submit(self, payload: AlertPayload) -> bool:
        """
        Queue an alert without waiting.

        Returns:
            True if queued without dropping anything, False if alerting is
            disabled or the oldest pending alert was dropped to make room.
        """
        if not self.enabled:
            logger.debug(f"Alerting disabled, dropping {payload.event.value} alert")
            return False

        self.metrics.submitted += 1
        dropped = False

        if self._queue.full():
            try:
                self._queue.get_nowait()
                self._queue.task_done()
                self.metrics.dropped += 1
                dropped = True
                logger.warning(
                    f"Alert queue full, dropped oldest alert. "
                    f"Total dropped: {self.metrics.dropped}"
                )
            except asyncio.QueueEmpty:
                pass

        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull:
            self.metrics.dropped += 1
            logger.error("Failed to queue alert after dropping - queue full")
            return False
        return not dropped

    async def run(self) -> None:
        """
        Deliver queued alerts until stop() is called.
        """
        self._running = True
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)

        logger.info("AlertDispatcher worker started")

        while self._running:
            try:
                payload = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            try:
                await self.deliver(payload)
            except Exception as e:
                logger.error(f"Unexpected alert delivery error: {e}")
            finally:
                self._queue.task_done()

        logger.info("AlertDispatcher worker stopped")

    async def stop(self) -> None:
        """Stop the worker and release the HTTP client."""
        logger.info("AlertDispatcher stopping...")
        self._running = False

        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def join(self) -> None:
        """Wait until every queued alert has been processed."""
        await self._queue.join()

    async def deliver(self, payload: AlertPayload) -> bool:
        """
        Deliver one alert with retries.

        Returns:
            True if the webhook accepted the alert
        """
        if self.breaker_open:
            self.metrics.breaker_rejections += 1
            logger.warning(
                f"Alert breaker open, dropping {payload.event.value} alert for "
                f"stream={payload.stream_id} feed={payload.feed_id}"
            )
            return False

        body = payload.model_dump(mode="json", by_alias=True)

        for attempt in range(1, self.max_attempts + 1):
            try:
                await self._post(body)
                self.metrics.delivered += 1
                self._consecutive_failures = 0
                return True
            except AlertDeliveryError as e:
                logger.warning(
                    f"Alert delivery failed (attempt {attempt}/{self.max_attempts}): {e}"
                )
                if attempt < self.max_attempts:
                    await self._sleep(self.backoff_base_seconds * (2 ** (attempt - 1)))

        self.metrics.failed += 1
        self._consecutive_failures += 1
        if self._consecutive_failures >= self.breaker_threshold:
            self._breaker_open_until = self._clock() + self.breaker_reset_seconds
            self._consecutive_failures = 0
            self.metrics.breaker_opened += 1
            logger.error(
                f"Alert breaker opened for {self.breaker_reset_seconds:.0f}s "
                f"after {self.breaker_threshold} failed deliveries"
            )
        return False

    async def _post(self, body: dict) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_seconds)
        try:
            response = await self._client.post(
                self.webhook_url,
                json=body,
                timeout=self.timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise AlertDeliveryError(str(e)) from e

        if response.status_code >= 400:
            raise AlertDeliveryError(f"Webhook returned HTTP {response.status_code}")
