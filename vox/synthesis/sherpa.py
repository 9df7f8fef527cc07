import asyncio
import logging
import os
import time
from pathlib import Path
from typing import Dict, List

from vox.interfaces.tts import ABCSynthesizer
from vox.core.config import SynthesisConfig
from vox.core.exceptions import SynthesisError
from vox.core.metrics import metrics

logger = logging.getLogger(__name__)

class SherpaKokoroSynthesizer(ABCSynthesizer):
    """
    Runs the sherpa-onnx offline TTS executable with a Kokoro model,
    one process per chunk.
    """

    def __init__(self, config: SynthesisConfig):
        self.config = config

    def preflight(self) -> None:
        if not Path(self.config.binary_path).exists():
            raise SynthesisError(f"TTS engine not found at {self.config.binary_path}")
        if not self.config.model_path.exists():
            raise SynthesisError(f"Kokoro model not found at {self.config.model_dir}")

    def build_command(self, text: str, voice_id: int, speed: float, output_path: Path) -> List[str]:
        # Slower speed means a longer length scale
        length_scale = 1.0 / speed
        return [
            self.config.binary_path,
            f"--kokoro-model={self.config.model_path}",
            f"--kokoro-voices={self.config.voices_path}",
            f"--kokoro-tokens={self.config.tokens_path}",
            f"--kokoro-data-dir={self.config.data_dir}",
            f"--num-threads={self.config.num_threads}",
            f"--sid={voice_id}",
            f"--kokoro-length-scale={length_scale:.2f}",
            f"--output-filename={output_path}",
            text,
        ]

    def build_env(self) -> Dict[str, str]:
        env = dict(os.environ)
        # The engine ships its shared libraries next to the binary
        for var in ("DYLD_LIBRARY_PATH", "LD_LIBRARY_PATH"):
            existing = env.get(var)
            env[var] = f"{self.config.library_dir}:{existing}" if existing else self.config.library_dir
        return env

    async def synthesize(self, text: str, voice_id: int, speed: float, output_path: Path) -> None:
        output_path = Path(output_path)
        cmd = self.build_command(text, voice_id, speed, output_path)
        logger.info(f"TTS generating {output_path.name}: {text[:60]}...")

        start = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self.build_env(),
            )
        except OSError as e:
            raise SynthesisError(f"Failed to launch TTS: {e}") from e

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            # Do not leave the engine running when the worker is cancelled
            try:
                process.kill()
            except ProcessLookupError:
                pass
            raise

        err_str = stderr.decode("utf-8", errors="replace").strip()
        out_str = stdout.decode("utf-8", errors="replace").strip()

        logger.debug(f"TTS exit code: {process.returncode}")
        if err_str:
            logger.debug(f"TTS stderr: {err_str[:500]}")
        if out_str:
            logger.debug(f"TTS stdout: {out_str[:500]}")

        if process.returncode != 0 or not output_path.exists():
            detail = err_str or out_str
            raise SynthesisError(f"TTS failed (exit {process.returncode}): {detail[:200]}")

        metrics.record_latency(
            "synthesis",
            (time.monotonic() - start) * 1000.0,
            tags={"voice": str(voice_id)},
        )
