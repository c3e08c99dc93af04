#!/usr/bin/env python

import argparse
import asyncio
import os

from voice_chorus.config import get_settings
from voice_chorus.main import run_client, setup_logging


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Run the voice-chorus microphone client")

    p.add_argument(
        "--server-url",
        default=os.getenv("CHORUS_SERVER_URL", "http://localhost:3000"),
        help="voice-chorus server (default: CHORUS_SERVER_URL or http://localhost:3000)",
    )
    p.add_argument(
        "--local",
        action="store_true",
        help="Run transcription/generation/synthesis in-process instead of via the server",
    )

    # Speech detection
    p.add_argument(
        "--vad-profile",
        default=os.getenv("CHORUS_VAD_PROFILE", "desktop"),
        choices=["desktop", "constrained"],
        help="Detector sensitivity preset (default: CHORUS_VAD_PROFILE or 'desktop')",
    )
    p.add_argument(
        "--input-device",
        default=os.getenv("CHORUS_INPUT_DEVICE", None),
        help="sounddevice input device name or index (default: CHORUS_INPUT_DEVICE)",
    )

    # Playback
    p.add_argument(
        "--bootstrap-personality",
        default=os.getenv("CHORUS_BOOTSTRAP_PERSONALITY", "advisor"),
        help="Personality the server's default audio is played as (default: CHORUS_BOOTSTRAP_PERSONALITY or 'advisor')",
    )
    p.add_argument(
        "--idle-pause",
        type=float,
        default=float(os.getenv("CHORUS_IDLE_PAUSE_S", "300") or "300"),
        help="Stop listening after this many silent seconds, 0 to never stop (default: CHORUS_IDLE_PAUSE_S or 300)",
    )
    p.add_argument(
        "--timeout",
        type=float,
        default=float(os.getenv("CHORUS_CLIENT_TIMEOUT_S", "180") or "180"),
        help="Timeout (seconds) per server request (default: CHORUS_CLIENT_TIMEOUT_S or 180)",
    )

    return p


async def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    settings = get_settings().model_copy(
        update={
            "server_url": args.server_url,
            "vad_profile": args.vad_profile,
            "input_device": args.input_device,
            "bootstrap_personality": args.bootstrap_personality,
            "client_timeout": int(args.timeout),
            "idle_pause_seconds": args.idle_pause,
        }
    )
    setup_logging(settings)
    await run_client(settings, local=bool(args.local))


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        raise SystemExit(0)
