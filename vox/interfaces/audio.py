from abc import ABC, abstractmethod
from pathlib import Path

class ABCPlaybackHandle(ABC):
    """
    One live playback of one audio file.
    Suspend/resume keep the playback position.
    """

    @abstractmethod
    async def wait(self) -> int:
        """Block until playback completes or is terminated. Returns the exit status."""
        pass

    @abstractmethod
    def suspend(self) -> None:
        pass

    @abstractmethod
    def resume(self) -> None:
        pass

    @abstractmethod
    def terminate(self) -> None:
        pass

class ABCAudioPlayer(ABC):
    """
    Interface for audio output.
    Responsibility: Play one audio file at a time.
    """

    @abstractmethod
    async def start(self, path: Path) -> ABCPlaybackHandle:
        """
        Start playing `path` and return its handle.
        Raises PlaybackError if the player cannot be launched.
        """
        pass

    async def play(self, path: Path) -> int:
        """Play `path` to the end."""
        handle = await self.start(path)
        return await handle.wait()
