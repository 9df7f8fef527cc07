import logging
import math
from pathlib import Path

from vox.core.files import atomic_write_text
from vox.synthesis.voices import DEFAULT_VOICE_ID, get_voice

logger = logging.getLogger(__name__)

DEFAULT_SPEED = 1.0

def is_valid_speed(speed: float) -> bool:
    return math.isfinite(speed) and speed > 0

class ConfigStore:
    """
    Persists the two user settings, voice id and playback speed.

    Each setting is one small text file in the data directory so that shell
    helpers can read and write them directly.
    """

    def __init__(self, directory: Path):
        self.directory = Path(directory)
        self.voice_file = self.directory / "voice"
        self.speed_file = self.directory / "speed"

    def ensure_defaults(self):
        """Write default values for settings that were never saved."""
        self.directory.mkdir(parents=True, exist_ok=True)
        if not self.voice_file.exists():
            self.save_voice_id(DEFAULT_VOICE_ID)
        if not self.speed_file.exists():
            self.save_speed(DEFAULT_SPEED)

    def load_voice_id(self) -> int:
        raw = self._read(self.voice_file)
        try:
            voice_id = int(raw)
        except (TypeError, ValueError):
            return DEFAULT_VOICE_ID
        if get_voice(voice_id) is None:
            logger.warning(f"Unknown voice id {voice_id} in {self.voice_file}, using default")
            return DEFAULT_VOICE_ID
        return voice_id

    def load_speed(self) -> float:
        raw = self._read(self.speed_file)
        try:
            speed = float(raw)
        except (TypeError, ValueError):
            return DEFAULT_SPEED
        if not is_valid_speed(speed):
            logger.warning(f"Invalid speed {speed} in {self.speed_file}, using default")
            return DEFAULT_SPEED
        return speed

    def save_voice_id(self, voice_id: int):
        self._write(self.voice_file, str(voice_id))

    def save_speed(self, speed: float):
        self._write(self.speed_file, str(speed))

    def _read(self, path: Path):
        try:
            return path.read_text(encoding="utf-8").strip()
        except OSError:
            return None

    def _write(self, path: Path, value: str):
        atomic_write_text(path, value)
