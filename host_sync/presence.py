import logging

logger = logging.getLogger(__name__)

class PresenceTracker:
    """Cached count of connected listeners, read for display only."""

    def __init__(self, source):
        self.source = source
        self._count = 0

    @property
    def count(self) -> int:
        return self._count

    @property
    def has_listeners(self) -> bool:
        return self._count > 0

    async def refresh(self) -> int:
        try:
            count = await self.source.listener_count()
        except Exception as e:
            logger.warning(f"Failed to read listener count, keeping {self._count}: {e}")
            return self._count

        self._count = max(0, int(count or 0))
        logger.debug(f"Listener count: {self._count}")
        return self._count

    def describe(self) -> str:
        noun = "listener" if self._count == 1 else "listeners"
        return f"Hosting {self._count} {noun}."
