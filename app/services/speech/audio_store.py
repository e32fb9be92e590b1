"""Storage for synthesized audio served back to Twilio."""
import logging
import re
import time
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"^[\w\-.]+\.mp3$")


class AudioStore:
    """Writes audio files to a local directory and builds their public URLs."""

    def __init__(self, directory: str, base_url: str = ""):
        self.directory = Path(directory)
        self.base_url = base_url.rstrip("/")

    def save(self, call_id: str, audio: bytes, prefix: str = "response") -> str:
        """Persist audio and return the URL Twilio can fetch it from."""
        self.directory.mkdir(parents=True, exist_ok=True)
        filename = f"{prefix}_{call_id}_{int(time.time() * 1000)}.mp3"
        (self.directory / filename).write_bytes(audio)
        return self.url_for(filename)

    def url_for(self, filename: str) -> str:
        return f"{self.base_url}/audio/{filename}"

    def path_for(self, filename: str) -> Optional[Path]:
        """Resolve a served filename; None if it is unsafe or missing."""
        if not _SAFE_NAME.match(filename):
            return None
        path = self.directory / filename
        return path if path.is_file() else None

    def delete(self, filename: str) -> bool:
        path = self.path_for(filename)
        if path is None:
            return False
        path.unlink(missing_ok=True)
        logger.info(f"[AUDIO] Cleaned up audio file: {filename}")
        return True
