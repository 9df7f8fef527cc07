import asyncio
import logging
import shutil
import signal
from pathlib import Path
from typing import List

from vox.interfaces.audio import ABCAudioPlayer, ABCPlaybackHandle
from vox.core.config import PlayerConfig
from vox.core.exceptions import PlaybackError

logger = logging.getLogger(__name__)

# WAV-capable players in priority order
PLAYER_CANDIDATES: List[List[str]] = [
    ["afplay"],
    ["paplay"],
    ["aplay", "-q"],
    ["play", "-q"],
    ["ffplay", "-nodisp", "-autoexit", "-loglevel", "quiet"],
]

def find_player_command() -> List[str]:
    """Return the first player from PLAYER_CANDIDATES available on PATH, or []."""
    for cmd in PLAYER_CANDIDATES:
        if shutil.which(cmd[0]):
            return list(cmd)
    return []

class SubprocessPlaybackHandle(ABCPlaybackHandle):
    """
    A running player process.
    Pause and resume stop and continue the process, so the player
    picks up exactly where it was suspended.
    """

    def __init__(self, process: asyncio.subprocess.Process):
        self.process = process
        self.suspended = False

    async def wait(self) -> int:
        return await self.process.wait()

    def suspend(self) -> None:
        if self._signal(signal.SIGSTOP):
            self.suspended = True

    def resume(self) -> None:
        if self._signal(signal.SIGCONT):
            self.suspended = False

    def terminate(self) -> None:
        if not self._signal(signal.SIGTERM):
            return
        # A stopped process only acts on SIGTERM once continued
        if self.suspended:
            self._signal(signal.SIGCONT)
            self.suspended = False

    def _signal(self, sig: int) -> bool:
        if self.process.returncode is not None:
            return False
        try:
            self.process.send_signal(sig)
        except ProcessLookupError:
            return False
        return True

class SubprocessAudioPlayer(ABCAudioPlayer):
    """Plays audio files through an external player executable."""

    def __init__(self, config: PlayerConfig):
        self.config = config
        self.command = list(config.command) or find_player_command()
        if self.command:
            logger.info(f"Audio player: {' '.join(self.command)}")
        else:
            logger.warning("No audio player found on PATH")

    async def start(self, path: Path) -> ABCPlaybackHandle:
        if not self.command:
            raise PlaybackError(
                "No audio player found. Install afplay, paplay, aplay, sox or ffplay, or set VOX_PLAYER_COMMAND."
            )
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                str(path),
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as e:
            raise PlaybackError(f"Failed to start audio player {self.command[0]}: {e}") from e

        logger.debug(f"Started {self.command[0]} (pid {process.pid}) for {Path(path).name}")
        return SubprocessPlaybackHandle(process)
