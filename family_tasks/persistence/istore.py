from abc import ABC, abstractmethod

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from family_tasks.helpers.errors import StoreConflictError
from family_tasks.helpers.monitoring import start_as_current_span
from family_tasks.models.document import DocumentModel, StoredDocumentModel
from family_tasks.models.readiness import ReadinessEnum

# Replay a whole read-modify-write when another writer won the race
conflict_retry = retry(
    reraise=True,
    retry=retry_if_exception_type(StoreConflictError),
    stop=stop_after_attempt(5),
    wait=wait_random_exponential(multiplier=0.1, max=2),
)


class IStore(ABC):
    @abstractmethod
    @start_as_current_span("store_readiness")
    async def readiness(self) -> ReadinessEnum:
        pass

    @abstractmethod
    @start_as_current_span("store_read")
    async def read(self) -> StoredDocumentModel:
        """
        Read the whole document.

        Raises `StoreUnavailableError` if the store cannot be reached.
        """

    @abstractmethod
    @start_as_current_span("store_write")
    async def write(
        self,
        document: DocumentModel,
        etag: str,
    ) -> str:
        """
        Overwrite the whole document, if it did not change since the read which returned `etag`.

        Returns the new etag. Raises `StoreConflictError` if the document changed, `StoreUnavailableError` if the store cannot be reached.
        """
