"""
Main entry point for voice-chorus.

`serve` runs the HTTP server; `client` runs the microphone loop against it.
"""

import argparse
import asyncio
import logging
import sys

from voice_chorus.config import Settings, get_settings


def setup_logging(settings: Settings | None = None) -> None:
    """Configure application logging."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def run_server(settings: Settings) -> None:
    """Serve the HTTP surface with uvicorn."""
    import uvicorn

    from voice_chorus.server.app import create_app

    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )


def build_playback(settings: Settings, output, fetch_default_audio=None):
    """Playback controller whose bootstrap clip plays from the bootstrap personality's seat."""
    from voice_chorus.client.playback import PlaybackController
    from voice_chorus.conversation.personalities import personality_position

    return PlaybackController(
        output,
        fetch_default_audio=fetch_default_audio,
        bootstrap_participant_id=settings.bootstrap_personality,
        bootstrap_position=personality_position(settings, settings.bootstrap_personality),
    )


async def run_client(settings: Settings, *, local: bool = False) -> None:
    """
    Run the voice loop until interrupted.

    Args:
        settings: Application settings.
        local: Run the pipeline in-process instead of talking to the server.
    """
    # Lazy imports so the server doesn't require the optional voice deps.
    from voice_chorus.client.audio_io import MicrophoneConfig, MicrophoneStream
    from voice_chorus.client.audio_out import AudioOutputConfig, SpatialAudioOutput
    from voice_chorus.client.remote import RemoteBackend
    from voice_chorus.client.session import VoiceLoop, VoiceLoopConfig
    from voice_chorus.client.speech_gate import SpeechGate, VADConfig, WebRTCVoiceDetector
    from voice_chorus.conversation.pipeline import ResponsePipeline
    from voice_chorus.conversation.service import build_service

    logger = logging.getLogger(__name__)
    vad_config = VADConfig.for_profile(settings.vad_profile)

    remote: RemoteBackend | None = None
    service = None
    if local:
        service = build_service(settings)
        service.store.initialize()
        backend = service

        async def fetch_default_audio() -> bytes | None:
            path = service.last_audio()
            return path.read_bytes() if path else None

    else:
        remote = RemoteBackend(settings.server_url, timeout=settings.client_timeout)
        backend = remote
        fetch_default_audio = remote.fetch_last_audio

    device = settings.input_device
    if device is not None and device.isdigit():
        device = int(device)

    playback = build_playback(settings, SpatialAudioOutput(AudioOutputConfig()), fetch_default_audio)
    gate = SpeechGate(WebRTCVoiceDetector(vad_config.sample_rate), vad_config)
    loop = VoiceLoop(
        gate=gate,
        playback=playback,
        pipeline=ResponsePipeline(backend),
        config=VoiceLoopConfig(sample_rate=vad_config.sample_rate, idle_pause_s=settings.idle_pause_seconds),
    )
    mic = MicrophoneStream(
        MicrophoneConfig(
            sample_rate=vad_config.sample_rate,
            frame_samples=vad_config.frame_samples,
            device=device,
        )
    )

    logger.info(f"Starting voice client ({'local' if local else settings.server_url})...")
    try:
        await loop.run(mic)
    finally:
        await loop.wait_idle()
        if remote is not None:
            await remote.close()
        if service is not None:
            await service.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="voice-chorus")
    parser.add_argument(
        "--mode",
        choices=["serve", "client"],
        default="serve",
        help="Run the HTTP server or the voice client",
    )
    parser.add_argument(
        "--local",
        action="store_true",
        help="Client only: run transcription/generation/synthesis in-process",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the application."""
    settings = get_settings()
    setup_logging(settings)
    args = build_parser().parse_args(sys.argv[1:] if argv is None else argv)

    try:
        if args.mode == "serve":
            run_server(settings)
        else:
            asyncio.run(run_client(settings, local=args.local))
    except KeyboardInterrupt:
        print("\nVoice session terminated by user.")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
