import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from pathlib import Path
from typing import List, Optional, Set

from vox.text import clean, count_words

logger = logging.getLogger(__name__)

class ChunkStatus(Enum):
    PENDING = auto()
    GENERATING = auto()
    READY = auto()
    FAILED = auto()

@dataclass
class Chunk:
    index: int
    text: str
    audio_path: Optional[Path] = None
    status: ChunkStatus = ChunkStatus.PENDING

@dataclass
class Utterance:
    raw: str
    cleaned: str
    total_words: int

    @classmethod
    def from_text(cls, raw: str) -> "Utterance":
        cleaned = clean(raw)
        return cls(raw=raw, cleaned=cleaned, total_words=count_words(cleaned))

@dataclass
class PlaybackSession:
    """
    Everything one `speak` request needs while it is being played.

    Generation pops chunks from `pending` in index order; each finished chunk
    is appended to `ready_audio`, so `ready_audio[i]` is always the audio of
    chunk i. The playback side waits on `ready_changed` for the chunk it
    needs next.
    """
    chunks: List[Chunk]
    total_words: int
    speed: float
    voice_id: int
    chunk_dir: Path
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    start_time: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    current_index: int = 0
    generate_cursor: int = 0
    spoken_words: int = 0
    ready_audio: List[Path] = field(default_factory=list)
    audio_files: Set[Path] = field(default_factory=set)
    pending: "asyncio.Queue[Chunk]" = field(init=False, repr=False)
    ready_changed: asyncio.Condition = field(init=False, repr=False)

    def __post_init__(self):
        self.pending = asyncio.Queue(maxsize=max(len(self.chunks), 1))
        for chunk in self.chunks:
            self.pending.put_nowait(chunk)
        self.ready_changed = asyncio.Condition()

    @classmethod
    def create(cls, texts: List[str], total_words: int, speed: float, voice_id: int, chunk_dir: Path) -> "PlaybackSession":
        chunks = [Chunk(index=i, text=t) for i, t in enumerate(texts)]
        return cls(chunks=chunks, total_words=total_words, speed=speed, voice_id=voice_id, chunk_dir=Path(chunk_dir))

    @property
    def total_chunks(self) -> int:
        return len(self.chunks)

    @property
    def progress(self) -> float:
        if not self.chunks:
            return 0.0
        return self.current_index / self.total_chunks

    @property
    def finished(self) -> bool:
        return self.current_index >= self.total_chunks

    def next_chunk(self) -> Optional[Chunk]:
        """Pop the next chunk to synthesize, or None once all were handed out."""
        try:
            chunk = self.pending.get_nowait()
        except asyncio.QueueEmpty:
            return None
        self.generate_cursor = chunk.index + 1
        return chunk

    def discard_pending(self) -> int:
        dropped = 0
        while not self.pending.empty():
            self.pending.get_nowait()
            dropped += 1
        return dropped

    def audio_path_for(self, chunk: Chunk) -> Path:
        # Session id in the name keeps a late result of an old session
        # from overwriting a file of the current one.
        path = self.chunk_dir / f".chunk_{self.session_id[:8]}_{chunk.index}.wav"
        self.audio_files.add(path)
        return path

    def is_ready(self, index: int) -> bool:
        return index < len(self.ready_audio)

    async def mark_ready(self, chunk: Chunk, path: Path):
        chunk.audio_path = path
        chunk.status = ChunkStatus.READY
        self.ready_audio.append(path)
        async with self.ready_changed:
            self.ready_changed.notify_all()

    async def wait_ready(self, index: int):
        async with self.ready_changed:
            await self.ready_changed.wait_for(lambda: self.is_ready(index))

    def mark_played(self):
        """Advance past the chunk that just finished playing."""
        self.spoken_words = round((self.current_index + 1) / self.total_chunks * self.total_words)
        self.current_index += 1

    def cleanup(self) -> int:
        """Delete every audio file created for this session. Returns how many existed."""
        removed = 0
        for path in self.audio_files:
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Could not remove {path}: {e}")
        return removed
