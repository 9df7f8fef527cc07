import argparse
import asyncio
import json
import logging
import os
import signal
import sys
from pathlib import Path
from typing import List, Optional

from vox.core.logging import setup_logging
from vox.core.config import Config
from vox.core.files import atomic_write_text
from vox.core.store import ConfigStore, is_valid_speed
from vox.orchestrator.pipeline import PlaybackPipeline
from vox.orchestrator.router import EventRouter
from vox.interfaces.audio import ABCAudioPlayer
from vox.audio.player import SubprocessAudioPlayer
from vox.synthesis.sherpa import SherpaKokoroSynthesizer
from vox.synthesis.voices import VOICES, get_voice
from vox.inbox.channel import RequestChannel
from vox.inbox.requests import Request, Speak, Stop, Toggle, write_request
from vox.inbox.status import StatusWriter, read_status

def build_player(config: Config) -> ABCAudioPlayer:
    if config.player.backend == "pyaudio":
        from vox.audio.pyaudio_player import PyAudioPlayer
        return PyAudioPlayer(config.player)
    return SubprocessAudioPlayer(config.player)

async def serve(config: Config):
    setup_logging(level=config.logging.level, fmt=config.logging.format, log_file=Path(config.logging.file))
    logger = logging.getLogger("main")
    logger.info("Starting Vox...")

    store = ConfigStore(Path(config.home))
    store.ensure_defaults()

    # Wire up components
    router = EventRouter()
    player = build_player(config)
    pipeline = PlaybackPipeline(
        SherpaKokoroSynthesizer(config.synthesis),
        player,
        router=router,
        store=store,
        config=config.playback,
    )
    StatusWriter(Path(config.inbox.status_file)).attach(router)
    channel = RequestChannel(config.inbox, pipeline)

    pid_file = Path(config.inbox.pid_file)
    atomic_write_text(pid_file, str(os.getpid()))

    # Handle graceful shutdown; SIGUSR1 means "a request was just written"
    loop = asyncio.get_running_loop()
    shutdown = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)
    loop.add_signal_handler(signal.SIGUSR1, channel.notify)

    try:
        await channel.start()
        await pipeline.stop() # publishes the initial idle status
        logger.info(f"Vox ready (voice {pipeline.voice_id}, speed {pipeline.speed}x). Waiting for requests...")
        await shutdown.wait()
    finally:
        logger.info("Stopping...")
        await channel.stop()
        await pipeline.close()
        if hasattr(player, "close"):
            player.close()
        pid_file.unlink(missing_ok=True)

def submit(config: Config, request: Request):
    write_request(Path(config.inbox.request_file), request)
    _nudge_daemon(Path(config.inbox.pid_file))

def _nudge_daemon(pid_file: Path):
    try:
        pid = int(pid_file.read_text().strip())
    except (OSError, ValueError):
        return
    try:
        os.kill(pid, signal.SIGUSR1)
    except OSError:
        # Stale pid file; a daemon started later still polls the inbox
        return

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vox", description="Read text aloud with a local TTS engine.")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("serve", help="Run the playback daemon (default)")
    speak = sub.add_parser("speak", help="Speak TEXT, or stdin when no text is given")
    speak.add_argument("text", nargs="*")
    sub.add_parser("stop", help="Stop speaking")
    sub.add_parser("toggle", help="Pause or resume")
    sub.add_parser("status", help="Print the daemon status as JSON")
    sub.add_parser("voices", help="List available voices")
    voice = sub.add_parser("voice", help="Show or set the voice id")
    voice.add_argument("id", nargs="?", type=int)
    speed = sub.add_parser("speed", help="Show or set the playback speed")
    speed.add_argument("value", nargs="?", type=float)
    return parser

def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = Config.load()
    store = ConfigStore(Path(config.home))
    command = args.command or "serve"

    if command == "serve":
        try:
            asyncio.run(serve(config))
        except KeyboardInterrupt:
            pass
        return 0

    if command == "speak":
        text = " ".join(args.text) if args.text else sys.stdin.read()
        if not text.strip():
            print("vox: nothing to speak", file=sys.stderr)
            return 1
        submit(config, Speak(text.strip()))
    elif command == "stop":
        submit(config, Stop())
    elif command == "toggle":
        submit(config, Toggle())
    elif command == "status":
        print(json.dumps(read_status(Path(config.inbox.status_file))))
    elif command == "voices":
        current = store.load_voice_id()
        for voice in VOICES:
            marker = "*" if voice.id == current else " "
            print(f"{marker} {voice.id:2d}  {voice.name}")
    elif command == "voice":
        if args.id is None:
            print(store.load_voice_id())
        elif get_voice(args.id) is None:
            print(f"vox: unknown voice id {args.id}", file=sys.stderr)
            return 1
        else:
            store.save_voice_id(args.id)
    elif command == "speed":
        if args.value is None:
            print(store.load_speed())
        elif not is_valid_speed(args.value):
            print("vox: speed must be a positive number", file=sys.stderr)
            return 1
        else:
            store.save_speed(args.value)
    return 0

if __name__ == "__main__":
    sys.exit(main())
