from dataclasses import dataclass
from typing import List, Optional

@dataclass(frozen=True)
class Voice:
    id: int
    name: str

# Speaker ids of the Kokoro en-v0_19 model
VOICES: List[Voice] = [
    Voice(0, "American Female"),
    Voice(1, "AF - Bella"),
    Voice(2, "AF - Nicole"),
    Voice(3, "AF - Sarah"),
    Voice(4, "AF - Sky"),
    Voice(5, "AM - Adam"),
    Voice(6, "AM - Michael"),
    Voice(7, "BF - Emma"),
    Voice(8, "BF - Isabella"),
    Voice(9, "BM - George"),
    Voice(10, "BM - Lewis"),
]

DEFAULT_VOICE_ID = 5

_VOICES_BY_ID = {v.id: v for v in VOICES}

def get_voice(voice_id: int) -> Optional[Voice]:
    return _VOICES_BY_ID.get(voice_id)
