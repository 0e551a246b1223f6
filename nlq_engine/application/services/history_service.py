import logging

from nlq_engine.domain.entities import QueryRecord
from nlq_engine.domain.interfaces import IHistoryStore

logger = logging.getLogger(__name__)


class HistoryRecorder:
    """
    Appends query records to the history store. Failures are logged and
    never reach the caller.
    """

    def __init__(self, store: IHistoryStore):
        self.store = store

    async def append(self, record: QueryRecord) -> bool:
        try:
            await self.store.insert(record)
            return True
        except Exception as e:
            logger.error(f"Failed to record query history: {e}", exc_info=True)
            return False
