import asyncio
import logging
import tempfile
from pathlib import Path
from typing import Awaitable, Optional, Set

from vox.core.config import PlaybackConfig
from vox.core.exceptions import PlaybackError, SynthesisError
from vox.core.logging import set_correlation_id
from vox.core.metrics import metrics
from vox.core.store import ConfigStore, DEFAULT_SPEED, is_valid_speed
from vox.interfaces.audio import ABCAudioPlayer, ABCPlaybackHandle
from vox.interfaces.tts import ABCSynthesizer
from vox.orchestrator.eta import DONE_MARKER, estimate
from vox.orchestrator.events import Event, SessionUpdated
from vox.orchestrator.router import EventRouter
from vox.orchestrator.session import ChunkStatus, PlaybackSession, Utterance
from vox.orchestrator.state import PlaybackState
from vox.synthesis.voices import DEFAULT_VOICE_ID, get_voice
from vox.text import segment

logger = logging.getLogger(__name__)

class PlaybackPipeline:
    """
    Speaks text chunk by chunk while the next chunks are being synthesized.

    All state lives on the event loop. Two worker tasks run per session: the
    generation worker synthesizes chunks one at a time in index order, as far
    ahead of playback as it gets, and the playback worker plays them strictly
    in order, waiting whenever the chunk it needs is not ready yet. Every
    change of the observable fields is published as Event.SESSION_UPDATED.
    """

    def __init__(
        self,
        synthesizer: ABCSynthesizer,
        player: ABCAudioPlayer,
        router: Optional[EventRouter] = None,
        store: Optional[ConfigStore] = None,
        config: Optional[PlaybackConfig] = None,
    ):
        self.synthesizer = synthesizer
        self.player = player
        self.router = router or EventRouter()
        self.store = store
        self.config = config or PlaybackConfig()

        # Observable fields
        self.state = PlaybackState.STOPPED
        self.progress = 0.0
        self.eta_text = ""
        self.word_count = 0
        self.current_index = 0
        self.total_sentences = 0
        self.last_error: Optional[str] = None
        self.voice_id = store.load_voice_id() if store else DEFAULT_VOICE_ID
        self.speed = store.load_speed() if store else DEFAULT_SPEED

        self.session: Optional[PlaybackSession] = None
        self._handle: Optional[ABCPlaybackHandle] = None
        self._unpaused = asyncio.Event()
        self._unpaused.set()
        self._playback_task: Optional[asyncio.Task] = None
        self._eta_task: Optional[asyncio.Task] = None
        self._done_task: Optional[asyncio.Task] = None
        self._workers: Set[asyncio.Task] = set()

    def snapshot(self) -> SessionUpdated:
        return SessionUpdated(
            state=self.state,
            progress=self.progress,
            eta_text=self.eta_text,
            word_count=self.word_count,
            current_index=self.current_index,
            total_sentences=self.total_sentences,
            last_error=self.last_error,
            voice_id=self.voice_id,
            speed=self.speed,
        )

    async def transition(self, new_state: PlaybackState):
        if self.state == new_state:
            return

        old_state = self.state
        self.state = new_state
        logger.info(f"Playback transition: {old_state.name} -> {new_state.name}",
                    extra={"old_state": old_state.name, "new_state": new_state.name})

    async def speak(self, text: str) -> bool:
        """
        Replace whatever is playing with `text`.

        Returns False when there was nothing to speak or the engine is not
        usable, True once a session has started.
        """
        await self.stop()
        self.last_error = None
        if self.store:
            # Settings may have been changed by another process
            self.voice_id = self.store.load_voice_id()
            self.speed = self.store.load_speed()

        utterance = Utterance.from_text(text)
        texts = segment(utterance.cleaned) if utterance.cleaned else []
        if not texts:
            logger.info("Nothing to speak after cleaning")
            await self._publish()
            return False

        try:
            self.synthesizer.preflight()
        except SynthesisError as e:
            await self._report_error(str(e))
            return False

        session = PlaybackSession.create(
            texts,
            total_words=utterance.total_words,
            speed=self.speed,
            voice_id=self.voice_id,
            chunk_dir=self._chunk_dir(),
        )
        self.session = session
        # Worker tasks inherit the correlation id from this context
        set_correlation_id(session.session_id)
        metrics.increment("sessions_started")
        logger.info(f"Speaking {utterance.total_words} words in {session.total_chunks} chunks")

        self.word_count = utterance.total_words
        self.total_sentences = session.total_chunks
        self.current_index = 0
        self.progress = 0.0
        self._unpaused.set()
        await self.transition(PlaybackState.PLAYING)
        self._update_eta()

        self._eta_task = self._spawn(self._eta_ticker(session))
        self._spawn(self._generation_loop(session))
        self._playback_task = self._spawn(self._playback_loop(session))

        await self._publish()
        return True

    async def toggle(self):
        if self.state == PlaybackState.PLAYING:
            if self._handle:
                self._handle.suspend()
            self._unpaused.clear()
            await self.transition(PlaybackState.PAUSED)
        elif self.state == PlaybackState.PAUSED:
            if self._handle:
                self._handle.resume()
            self._unpaused.set()
            await self.transition(PlaybackState.PLAYING)
        else:
            return
        await self._publish()

    async def stop(self):
        """Tear down the current session. Safe to call in any state."""
        session = self.session
        self.session = None

        self._cancel(self._eta_task)
        self._eta_task = None
        self._cancel(self._done_task)
        self._done_task = None

        if self._handle:
            self._handle.terminate()
            self._handle = None
        self._cancel(self._playback_task)
        self._playback_task = None
        self._unpaused.set()

        if session:
            # An in-flight synthesis finishes on its own and is discarded
            dropped = session.discard_pending()
            removed = session.cleanup()
            logger.info(f"Session stopped ({dropped} chunks never generated, {removed} audio files removed)")

        await self.transition(PlaybackState.STOPPED)
        self.eta_text = ""
        await self._publish()

    async def set_speed(self, speed: float):
        """Change the speed used by the next session."""
        if not is_valid_speed(speed):
            raise ValueError(f"Speed must be a positive number, got {speed}")
        self.speed = speed
        if self.store:
            self.store.save_speed(speed)
        await self._publish()

    async def set_voice(self, voice_id: int):
        """Change the voice used by the next session."""
        if get_voice(voice_id) is None:
            raise ValueError(f"Unknown voice id {voice_id}")
        self.voice_id = voice_id
        if self.store:
            self.store.save_voice_id(voice_id)
        await self._publish()

    async def close(self):
        """Stop playback and wait for every worker to end. Call at process exit."""
        await self.stop()
        for task in list(self._workers):
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)

    async def _generation_loop(self, session: PlaybackSession):
        while True:
            chunk = session.next_chunk()
            if chunk is None:
                logger.debug("All chunks handed to the synthesizer")
                return

            chunk.status = ChunkStatus.GENERATING
            path = session.audio_path_for(chunk)
            try:
                await self.synthesizer.synthesize(chunk.text, session.voice_id, session.speed, path)
            except (SynthesisError, OSError) as e:
                if self.session is not session:
                    # Session files were already cleaned up; drop any partial output
                    _remove(path)
                    return
                chunk.status = ChunkStatus.FAILED
                metrics.increment("synthesis_failures")
                logger.error(f"Synthesis failed for chunk {chunk.index}: {e}")
                # Later chunks are never generated; the session stalls until stop/speak
                await self._report_error(str(e))
                return

            if self.session is not session:
                logger.debug(f"Discarding chunk {chunk.index} of a stopped session")
                _remove(path)
                return

            self.last_error = None
            metrics.increment("chunks_generated")
            await session.mark_ready(chunk, path)
            await self.router.dispatch(Event.CHUNK_READY, chunk.index)
            await self._publish()

    async def _playback_loop(self, session: PlaybackSession):
        while self.session is session:
            if session.finished:
                await self._finish(session)
                return

            await self._unpaused.wait()
            index = session.current_index
            await session.wait_ready(index)
            if self.session is not session:
                return
            if not self._unpaused.is_set():
                continue

            path = session.ready_audio[index]
            try:
                handle = await self.player.start(path)
            except PlaybackError as e:
                metrics.increment("playback_failures")
                logger.error(f"Playback failed for chunk {index}: {e}")
                await self._report_error(str(e))
                return

            if self.session is not session:
                handle.terminate()
                return
            self._handle = handle
            if not self._unpaused.is_set():
                # Paused while the player was starting
                handle.suspend()

            logger.info(f"Playing chunk {index}: {path.name}")
            exit_code = await handle.wait()
            if self._handle is handle:
                self._handle = None
            if self.session is not session:
                return
            logger.debug(f"Player exit code: {exit_code}")

            _remove(path)
            session.mark_played()
            metrics.increment("chunks_played")
            self.current_index = session.current_index
            self.progress = session.progress
            self._update_eta()
            await self.router.dispatch(Event.CHUNK_PLAYED, index)
            await self._publish()

    async def _finish(self, session: PlaybackSession):
        self.session = None
        self._playback_task = None
        self._cancel(self._eta_task)
        self._eta_task = None
        session.cleanup()

        self.progress = 1.0
        await self.transition(PlaybackState.STOPPED)
        self.eta_text = DONE_MARKER
        metrics.increment("sessions_completed")
        logger.info("Playback complete")

        self._done_task = self._spawn(self._clear_done_marker())
        await self.router.dispatch(Event.PLAYBACK_COMPLETE)
        await self._publish()

    async def _clear_done_marker(self):
        await asyncio.sleep(self.config.done_linger)
        if self.state == PlaybackState.STOPPED and self.eta_text == DONE_MARKER:
            self.eta_text = ""
            await self._publish()

    async def _eta_ticker(self, session: PlaybackSession):
        while self.session is session:
            await asyncio.sleep(self.config.eta_interval)
            if self.session is not session:
                return
            self._update_eta()
            await self._publish()

    def _update_eta(self):
        session = self.session
        if session is None or self.state == PlaybackState.STOPPED:
            self.eta_text = ""
            return
        self.eta_text = estimate(session.total_words, session.spoken_words, session.speed, self.config.base_wpm)

    async def _report_error(self, message: str):
        self.last_error = message
        await self.router.dispatch(Event.ERROR_OCCURRED, message)
        await self._publish()

    async def _publish(self):
        await self.router.dispatch(Event.SESSION_UPDATED, self.snapshot())

    def _chunk_dir(self) -> Path:
        directory = Path(self.config.chunk_dir or tempfile.gettempdir())
        directory.mkdir(parents=True, exist_ok=True)
        return directory

    def _spawn(self, coro: Awaitable) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._workers.add(task)
        task.add_done_callback(self._on_worker_done)
        return task

    def _on_worker_done(self, task: asyncio.Task):
        self._workers.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Pipeline worker crashed: {exc}", exc_info=exc)

    def _cancel(self, task: Optional[asyncio.Task]):
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()

def _remove(path: Path):
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove {path}: {e}")
