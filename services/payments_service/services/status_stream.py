"""Server-Sent Events stream that watches a QR / PayNow payment until it resolves.

One ``PaymentStatusStream`` per watching connection. Polling runs in a single
asyncio task that is cancelled as soon as the consumer stops reading, so no
timer outlives its connection.

Events (``data: <json>\\n\\n``):
    {"poll": n, ...provider payload}       every poll
    {"success": true, ...settlement}       terminal
    {"fail": true, "error": ...}           terminal
    {"error": ...}                         terminal
"""

import asyncio
import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

from libs.common.config import get_settings
from libs.common.errors import SettlementError
from libs.common.logging import get_logger
from services.payments_service.provider_types import (
    PaymentProviderClient,
    PaymentState,
    ProviderError,
)

logger = get_logger(__name__)

SuccessCallback = Callable[[], Awaitable[dict[str, Any]]]


@dataclass
class StreamEvent:
    data: dict[str, Any]
    terminal: bool = False

    def encode(self) -> str:
        return f"data: {json.dumps(self.data, default=str)}\n\n"


class PaymentStatusStream:
    def __init__(
        self,
        client: PaymentProviderClient,
        reference: str,
        *,
        on_success: Optional[SuccessCallback] = None,
        interval: Optional[float] = None,
        max_polls: Optional[int] = None,
    ):
        settings = get_settings()
        self.client = client
        self.reference = reference
        self.on_success = on_success
        self.interval = settings.STATUS_POLL_INTERVAL_SECONDS if interval is None else interval
        self.max_polls = settings.STATUS_POLL_MAX_ATTEMPTS if max_polls is None else max_polls
        self.polls = 0
        self._queue: asyncio.Queue[StreamEvent] = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None
        self._finished = False

    # ------------------------------------------------------------------
    # Producer
    # ------------------------------------------------------------------

    def _emit(self, data: dict[str, Any]) -> None:
        if not self._finished:
            self._queue.put_nowait(StreamEvent(data))

    def _finish(self, data: dict[str, Any]) -> None:
        """Queue the terminal event. Only the first call has any effect."""
        if self._finished:
            return
        self._finished = True
        self._queue.put_nowait(StreamEvent(data, terminal=True))

    async def _poll_once(self) -> bool:
        """Run one poll; returns True once a terminal event has been queued."""
        self.polls += 1
        final_attempt = self.polls >= self.max_polls
        result = await self.client.query_status(self.reference, final_attempt=final_attempt)
        self._emit({"poll": self.polls, **result.payload})

        if result.state == PaymentState.SUCCEEDED:
            settlement = await self.on_success() if self.on_success else {}
            self._finish({"success": True, **settlement})
            return True
        if result.state == PaymentState.FAILED:
            error = "Timeout" if final_attempt else "Payment failed"
            self._finish({"fail": True, "error": error, **result.payload})
            return True
        if final_attempt:
            self._finish({"fail": True, "error": "Timeout"})
            return True
        return False

    async def _run(self) -> None:
        try:
            while not self._finished:
                await asyncio.sleep(self.interval)
                if await self._poll_once():
                    break
        except asyncio.CancelledError:
            raise
        except SettlementError as exc:
            logger.warning("Settlement failed for %s: %s", self.reference, exc)
            self._finish({"error": exc.detail, "code": exc.code})
        except ProviderError as exc:
            logger.error("Status poll failed for %s: %s", self.reference, exc.message)
            self._finish({"error": exc.message})
        except Exception:
            logger.exception("Status stream for %s crashed", self.reference)
            self._finish({"error": "Unexpected error while checking payment status"})

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name=f"payment-status:{self.reference}")

    async def cancel(self) -> None:
        """Stop polling. Safe to call more than once."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Status stream for %s cancelled after %s poll(s)", self.reference, self.polls)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def events(self) -> AsyncIterator[StreamEvent]:
        """Yield events until the terminal one; cancels polling when the consumer leaves."""
        self.start()
        try:
            while True:
                event = await self._queue.get()
                yield event
                if event.terminal:
                    break
        finally:
            await self.cancel()

    async def sse(
        self, is_disconnected: Optional[Callable[[], Awaitable[bool]]] = None
    ) -> AsyncIterator[str]:
        """Encoded events for a ``StreamingResponse``."""
        try:
            async for event in self.events():
                if is_disconnected is not None and await is_disconnected():
                    logger.info("Client watching %s disconnected", self.reference)
                    break
                yield event.encode()
        finally:
            await self.cancel()
