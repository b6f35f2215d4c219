from copy import deepcopy
from typing import Any

from family_tasks.helpers.config_models.store import MemoryModel
from family_tasks.helpers.errors import StoreConflictError
from family_tasks.helpers.logging import logger
from family_tasks.helpers.monitoring import counter_add, store_conflict
from family_tasks.models.document import DocumentModel, StoredDocumentModel
from family_tasks.models.readiness import ReadinessEnum
from family_tasks.persistence.istore import IStore
from family_tasks.persistence.record import parse_record


class MemoryStore(IStore):
    """
    A document held in process memory.

    The etag is a revision counter, the check-and-write is atomic as there is no await between both. Data is lost on restart, use for tests and local runs.
    """

    _config: MemoryModel
    _record: Any
    _revision: int

    def __init__(
        self,
        config: MemoryModel,
        record: Any = None,
    ):
        logger.warning("Using memory store, data will be lost on restart")
        self._config = config
        self._record = deepcopy(record) if record else {"groups": {}, "tasks": []}
        self._revision = 0

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the memory store.
        """
        return ReadinessEnum.OK  # Always ready, it's memory :)

    async def read(self) -> StoredDocumentModel:
        # Parse a copy, callers mutate what they read
        return StoredDocumentModel(
            document=parse_record(deepcopy(self._record)),
            etag=str(self._revision),
        )

    async def write(
        self,
        document: DocumentModel,
        etag: str,
    ) -> str:
        if etag != str(self._revision):
            counter_add(store_conflict, 1)
            raise StoreConflictError(
                "Document changed since it was read",
                actual=str(self._revision),
                expected=etag,
            )
        self._record = document.to_record()
        self._revision += 1
        logger.debug("Document saved, revision %s", self._revision)
        return str(self._revision)

    @property
    def record(self) -> Any:
        """
        Raw stored record, for inspection.
        """
        return deepcopy(self._record)
