import logging
import os
import fcntl
from pathlib import Path
from pydantic import ValidationError
from .models import TokenBundle
from .config import settings

logger = logging.getLogger(__name__)

class TokenStore:
    """
    Host credentials on disk.

    The file holds secrets, so it is created owner-only and never goes
    through a world-readable temporary.
    """

    def __init__(self, path):
        self.path = Path(path)
        self.read_only = False
        self.tokens = self._read()

    def _read(self) -> TokenBundle:
        try:
            raw = self.path.read_text()
        except FileNotFoundError:
            logger.info(f"No token file at {self.path}, host must log in first.")
            return TokenBundle()
        except OSError as e:
            logger.error(f"Cannot read token file {self.path}: {e}")
            return TokenBundle()

        try:
            return TokenBundle.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Token file {self.path} is corrupt, host must log in again: {e}")
            return TokenBundle()

    def save(self):
        if not settings.PERSIST_ENABLED or self.read_only:
            return

        tmp_path = self.path.with_suffix('.tmp')
        try:
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, 'w') as f:
                try:
                    fcntl.flock(f, fcntl.LOCK_EX | fcntl.LOCK_NB)
                except BlockingIOError:
                    logger.warning("Token file is locked by another writer, not saving.")
                    return
                f.write(self.tokens.model_dump_json(indent=2))
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to save tokens to {self.path}: {e}")
            self.read_only = True

    def update(self, **fields):
        """Merges non-None fields into the bundle and persists it."""
        changes = {k: v for k, v in fields.items() if v is not None}
        self.tokens = self.tokens.model_copy(update=changes)
        self.save()
