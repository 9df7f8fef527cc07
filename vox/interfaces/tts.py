from abc import ABC, abstractmethod
from pathlib import Path

class ABCSynthesizer(ABC):
    """
    Interface for Text-to-Speech engines.
    Responsibility: Synthesize one chunk of text into an audio file.
    """

    @abstractmethod
    async def synthesize(self, text: str, voice_id: int, speed: float, output_path: Path) -> None:
        """
        Write the audio for `text` to `output_path`.
        Raises SynthesisError if no audio file was produced.
        """
        pass

    def preflight(self) -> None:
        """
        Check that the engine can run at all before a session starts.
        Raises SynthesisError with a readable message otherwise.
        """
        pass
