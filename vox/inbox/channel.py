import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

from vox.core.config import InboxConfig
from vox.inbox.requests import Request, Speak, Stop, Toggle, parse_request
from vox.orchestrator.pipeline import PlaybackPipeline

logger = logging.getLogger(__name__)

class RequestChannel:
    """
    Watches the request inbox file and forwards requests to the pipeline.

    The inbox is checked every `poll_interval` seconds and immediately
    whenever `notify()` is called (the daemon wires it to SIGUSR1). A payload
    is claimed by renaming the inbox away before it is read, so it can never
    be dispatched twice, even if dispatch crashes.
    """

    def __init__(self, config: InboxConfig, pipeline: PlaybackPipeline):
        self.config = config
        self.pipeline = pipeline
        self.request_file = Path(config.request_file)
        self.claim_file = self.request_file.with_name(self.request_file.name + ".claimed")
        self.running = False
        self._task: Optional[asyncio.Task] = None
        self._wake = asyncio.Event()

    def ensure_inbox(self):
        self.request_file.parent.mkdir(parents=True, exist_ok=True)
        # touch never truncates a request written in the meantime
        self.request_file.touch(exist_ok=True)

    def notify(self):
        self._wake.set()

    async def start(self) -> None:
        if self.running:
            return
        self.ensure_inbox()
        self.running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Request watcher started on {self.request_file}")

    async def stop(self) -> None:
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Request watcher stopped")

    async def _run(self) -> None:
        while self.running:
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.config.poll_interval)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
            try:
                await self.poll_once()
            except Exception as e:
                logger.error(f"Error handling request: {e}", exc_info=True)

    def claim(self) -> Optional[str]:
        """Take the current payload out of the inbox. None if there is nothing to read."""
        try:
            if self.request_file.stat().st_size == 0:
                return None
        except OSError:
            return None

        try:
            os.replace(self.request_file, self.claim_file)
        except OSError as e:
            logger.debug(f"Could not claim request: {e}")
            return None

        try:
            self.ensure_inbox()
            return self.claim_file.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning(f"Could not read claimed request: {e}")
            return None
        finally:
            self.claim_file.unlink(missing_ok=True)

    async def poll_once(self) -> Optional[Request]:
        payload = self.claim()
        if payload is None:
            return None
        request = parse_request(payload)
        if request is None:
            return None
        logger.info(f"Request received: {payload.strip()[:100]}...")
        await self.dispatch(request)
        return request

    async def dispatch(self, request: Request):
        if isinstance(request, Stop):
            await self.pipeline.stop()
        elif isinstance(request, Toggle):
            await self.pipeline.toggle()
        elif isinstance(request, Speak):
            await self.pipeline.speak(request.text)
