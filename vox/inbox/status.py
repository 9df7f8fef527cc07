import json
import logging
from pathlib import Path
from typing import Any, Dict

from vox.core.files import atomic_write_text
from vox.core.store import DEFAULT_SPEED
from vox.orchestrator.events import Event, SessionUpdated
from vox.orchestrator.router import EventRouter
from vox.synthesis.voices import DEFAULT_VOICE_ID

logger = logging.getLogger(__name__)

class StatusWriter:
    """Mirrors every SessionUpdated into a JSON file for out-of-process front-ends."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def attach(self, router: EventRouter):
        router.register(Event.SESSION_UPDATED, self.on_session_updated)

    async def on_session_updated(self, update: SessionUpdated):
        self.write(update)

    def write(self, update: SessionUpdated):
        try:
            atomic_write_text(self.path, json.dumps(update.to_dict()))
        except OSError as e:
            logger.warning(f"Could not write status file {self.path}: {e}")

def read_status(path: Path) -> Dict[str, Any]:
    """Last published status, or a stopped default when there is none."""
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return {"state": "stopped", "voice": DEFAULT_VOICE_ID, "speed": DEFAULT_SPEED}
