"""
On-disk audio store.

Layout under the root directory:
- uploads/    temporary transcription input, deleted right after use
- responses/  synthesized replies, rolling retention of the most recent files
- initial/    default audio served before anything has been synthesized
"""

import logging
import time
from pathlib import Path

logger = logging.getLogger(__name__)

INITIAL_AUDIO_NAME = "initial_response.mp3"


class AudioStore:
    """Manages uploaded and synthesized audio files."""

    def __init__(self, root: str | Path, retention: int = 5) -> None:
        """
        Initialize the store.

        Args:
            root: Root audio directory.
            retention: Number of response files kept after each new synthesis.
        """
        if retention < 1:
            raise ValueError("retention must be at least 1")
        self._root = Path(root)
        self._retention = retention
        self._last_generated: Path = self.initial_dir / INITIAL_AUDIO_NAME

    @property
    def root(self) -> Path:
        return self._root

    @property
    def uploads_dir(self) -> Path:
        return self._root / "uploads"

    @property
    def responses_dir(self) -> Path:
        return self._root / "responses"

    @property
    def initial_dir(self) -> Path:
        return self._root / "initial"

    def initialize(self) -> None:
        """Create the audio directories if they do not exist."""
        for d in (self._root, self.uploads_dir, self.responses_dir, self.initial_dir):
            if not d.exists():
                d.mkdir(parents=True, exist_ok=True)
                logger.info(f"[STORE] Created directory: {d}")

    def _stamp(self) -> int:
        return int(time.time() * 1000)

    def _unique(self, directory: Path, prefix: str, suffix: str) -> Path:
        stamp = self._stamp()
        path = directory / f"{prefix}_{stamp}{suffix}"
        n = 1
        while path.exists():
            path = directory / f"{prefix}_{stamp}_{n}{suffix}"
            n += 1
        return path

    def save_upload(self, audio: bytes) -> Path:
        """Write uploaded audio to a temporary file for transcription."""
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        path = self._unique(self.uploads_dir, "audio", ".wav")
        path.write_bytes(audio)
        return path

    def discard(self, path: Path) -> None:
        """Delete a temporary upload; missing files are ignored."""
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"[STORE] Could not delete {path}: {e}")

    def save_response(self, audio: bytes, suffix: str = ".mp3") -> Path:
        """
        Persist synthesized audio and make it the last generated file.

        Older responses beyond the retention count are removed afterwards.
        """
        self.responses_dir.mkdir(parents=True, exist_ok=True)
        path = self._unique(self.responses_dir, "response", suffix)
        path.write_bytes(audio)
        self._last_generated = path
        self.cleanup_old_responses()
        return path

    def last_audio(self) -> Path | None:
        """Get the most recently synthesized file, or the initial file, if present."""
        if self._last_generated.exists():
            return self._last_generated
        initial = self.initial_dir / INITIAL_AUDIO_NAME
        if initial.exists():
            return initial
        return None

    def cleanup_old_responses(self) -> list[Path]:
        """
        Keep only the most recent responses (the last generated file included).

        Returns:
            Paths that were deleted.
        """
        deleted: list[Path] = []
        try:
            others = [
                p for p in self.responses_dir.iterdir()
                if p.is_file() and p != self._last_generated
            ]
            others.sort(key=lambda p: p.stat().st_mtime, reverse=True)
            for path in others[self._retention - 1:]:
                path.unlink()
                deleted.append(path)
                logger.info(f"[STORE] Cleaned up old response file: {path}")
        except OSError as e:
            logger.error(f"[STORE] Error cleaning up old responses: {e}")
        return deleted
