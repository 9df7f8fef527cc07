from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Dict, Optional

from vox.orchestrator.state import PlaybackState

class Event(Enum):
    SESSION_UPDATED = auto()
    CHUNK_READY = auto()
    CHUNK_PLAYED = auto()
    ERROR_OCCURRED = auto()
    PLAYBACK_COMPLETE = auto()

@dataclass(frozen=True)
class SessionUpdated:
    """Snapshot of every field a presentation layer may show."""
    state: PlaybackState
    progress: float
    eta_text: str
    word_count: int
    current_index: int
    total_sentences: int
    last_error: Optional[str]
    voice_id: int
    speed: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.name.lower(),
            "progress": round(self.progress, 4),
            "eta": self.eta_text,
            "words": self.word_count,
            "current_index": self.current_index,
            "total_sentences": self.total_sentences,
            "last_error": self.last_error,
            "voice": self.voice_id,
            "speed": self.speed,
        }
