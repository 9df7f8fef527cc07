import asyncio
import logging
import threading
import wave
from pathlib import Path
from typing import Optional

import pyaudio

from vox.interfaces.audio import ABCAudioPlayer, ABCPlaybackHandle
from vox.core.config import PlayerConfig
from vox.core.exceptions import PlaybackError

logger = logging.getLogger(__name__)

class PyAudioPlaybackHandle(ABCPlaybackHandle):
    """
    Streams a WAV file to an output stream from a worker thread.
    Pausing closes a gate between frame writes, so resume continues from
    the exact frame where playback stopped.
    """

    frames_per_write = 1024

    def __init__(self, wav: wave.Wave_read, stream: "pyaudio.Stream"):
        self._wav = wav
        self._stream = stream
        self._resumed = threading.Event()
        self._resumed.set()
        self._terminated = threading.Event()
        self._future: Optional[asyncio.Future] = None
        self.position = 0 # frames written so far

    def begin(self, loop: asyncio.AbstractEventLoop) -> None:
        self._future = loop.run_in_executor(None, self._run)

    def _run(self) -> int:
        try:
            while not self._terminated.is_set():
                self._resumed.wait()
                if self._terminated.is_set():
                    break
                data = self._wav.readframes(self.frames_per_write)
                if not data:
                    break
                self._stream.write(data)
                self.position = self._wav.tell()
        finally:
            self._stream.stop_stream()
            self._stream.close()
            self._wav.close()
        return -1 if self._terminated.is_set() else 0

    async def wait(self) -> int:
        return await self._future

    def suspend(self) -> None:
        self._resumed.clear()

    def resume(self) -> None:
        self._resumed.set()

    def terminate(self) -> None:
        self._terminated.set()
        self._resumed.set()

class PyAudioPlayer(ABCAudioPlayer):
    """
    In-process WAV playback through PyAudio, for platforms where the
    player process cannot be suspended with signals.
    """

    def __init__(self, config: PlayerConfig):
        self.config = config
        self.pa = pyaudio.PyAudio()

    async def start(self, path: Path) -> ABCPlaybackHandle:
        idx = self.config.output_device_index if self.config.output_device_index != -1 else None
        try:
            wav = wave.open(str(path), "rb")
        except (OSError, wave.Error) as e:
            raise PlaybackError(f"Cannot open {path}: {e}") from e

        try:
            stream = self.pa.open(
                format=self.pa.get_format_from_width(wav.getsampwidth()),
                channels=wav.getnchannels(),
                rate=wav.getframerate(),
                output=True,
                output_device_index=idx,
            )
        except OSError as e:
            wav.close()
            raise PlaybackError(f"Failed to open output stream: {e}") from e

        logger.debug(f"PyAudio playing {Path(path).name} at {wav.getframerate()}Hz")
        handle = PyAudioPlaybackHandle(wav, stream)
        handle.begin(asyncio.get_running_loop())
        return handle

    def close(self) -> None:
        self.pa.terminate()
