from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from vox.core.files import atomic_write_text

STOP_PAYLOAD = "__STOP__"
TOGGLE_PAYLOAD = "__TOGGLE__"

@dataclass(frozen=True)
class Speak:
    text: str

@dataclass(frozen=True)
class Stop:
    pass

@dataclass(frozen=True)
class Toggle:
    pass

Request = Union[Speak, Stop, Toggle]

def parse_request(payload: str) -> Optional[Request]:
    """Map an inbox payload to a request. Blank payloads map to None."""
    trimmed = payload.strip()
    if not trimmed:
        return None
    if trimmed == STOP_PAYLOAD:
        return Stop()
    if trimmed == TOGGLE_PAYLOAD:
        return Toggle()
    return Speak(trimmed)

def encode_request(request: Request) -> str:
    if isinstance(request, Stop):
        return STOP_PAYLOAD
    if isinstance(request, Toggle):
        return TOGGLE_PAYLOAD
    return request.text

def write_request(path: Path, request: Request):
    """Submit a request; a newer write replaces an unconsumed older one."""
    atomic_write_text(path, encode_request(request) + "\n")
