import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Mapping, Optional

from vox.core.exceptions import ConfigurationError

DEFAULT_HOME = "~/.vox"
ENGINE_BINARY = "sherpa-onnx-offline-tts"
MODEL_DIRNAME = "kokoro-en-v0_19"

@dataclass
class LoggingConfig:
    level: str = "INFO"
    format: str = "json"
    file: str = "" # empty: <home>/vox.log

@dataclass
class SynthesisConfig:
    binary_path: str = "" # empty: <home>/bin/sherpa-onnx-offline-tts
    model_dir: str = "" # empty: <home>/kokoro-en-v0_19
    library_dir: str = "" # empty: directory of the binary
    num_threads: int = 2

    @property
    def model_path(self) -> Path:
        return Path(self.model_dir) / "model.onnx"

    @property
    def voices_path(self) -> Path:
        return Path(self.model_dir) / "voices.bin"

    @property
    def tokens_path(self) -> Path:
        return Path(self.model_dir) / "tokens.txt"

    @property
    def data_dir(self) -> Path:
        return Path(self.model_dir) / "espeak-ng-data"

@dataclass
class PlayerConfig:
    backend: str = "subprocess" # "subprocess" or "pyaudio"
    command: List[str] = field(default_factory=list) # empty: first player found on PATH
    output_device_index: int = -1

@dataclass
class InboxConfig:
    request_file: str = "" # empty: <home>/.request
    status_file: str = "" # empty: <home>/status.json
    pid_file: str = "" # empty: <home>/vox.pid
    poll_interval: float = 0.5

@dataclass
class PlaybackConfig:
    chunk_dir: str = "" # empty: <home>
    base_wpm: float = 160.0
    eta_interval: float = 1.0
    done_linger: float = 2.0

@dataclass
class Config:
    home: str = DEFAULT_HOME
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    synthesis: SynthesisConfig = field(default_factory=SynthesisConfig)
    player: PlayerConfig = field(default_factory=PlayerConfig)
    inbox: InboxConfig = field(default_factory=InboxConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)

    def __post_init__(self):
        home = Path(self.home).expanduser()
        self.home = str(home)

        # Everything not set explicitly lives under the data directory
        if not self.logging.file:
            self.logging.file = str(home / "vox.log")
        if not self.synthesis.binary_path:
            self.synthesis.binary_path = str(home / "bin" / ENGINE_BINARY)
        if not self.synthesis.model_dir:
            self.synthesis.model_dir = str(home / MODEL_DIRNAME)
        if not self.synthesis.library_dir:
            self.synthesis.library_dir = str(Path(self.synthesis.binary_path).parent)
        if not self.inbox.request_file:
            self.inbox.request_file = str(home / ".request")
        if not self.inbox.status_file:
            self.inbox.status_file = str(home / "status.json")
        if not self.inbox.pid_file:
            self.inbox.pid_file = str(home / "vox.pid")
        if not self.playback.chunk_dir:
            self.playback.chunk_dir = str(home)

        if self.player.backend not in ("subprocess", "pyaudio"):
            raise ConfigurationError(f"Unknown player backend: {self.player.backend}")
        if self.synthesis.num_threads < 1:
            raise ConfigurationError("synthesis.num_threads must be at least 1")
        if self.playback.base_wpm <= 0:
            raise ConfigurationError("playback.base_wpm must be positive")

    @classmethod
    def load(cls, env: Optional[Mapping[str, str]] = None) -> "Config":
        """
        Build the configuration from defaults and VOX_* environment variables.

        Args:
            env: Mapping to read overrides from (defaults to os.environ)
        """
        env = os.environ if env is None else env
        return cls(
            home=env.get("VOX_HOME", DEFAULT_HOME),
            logging=LoggingConfig(
                level=env.get("VOX_LOG_LEVEL", "INFO").upper(),
                format=env.get("VOX_LOG_FORMAT", "json"),
            ),
            synthesis=SynthesisConfig(
                binary_path=env.get("VOX_TTS_BIN", ""),
                model_dir=env.get("VOX_MODEL_DIR", ""),
                library_dir=env.get("VOX_LIB_DIR", ""),
            ),
            player=PlayerConfig(
                backend=env.get("VOX_PLAYER", "subprocess"),
                command=shlex.split(env.get("VOX_PLAYER_COMMAND", "")),
            ),
        )
