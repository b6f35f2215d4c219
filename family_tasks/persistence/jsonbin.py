from typing import Any

from aiohttp import ClientError, ClientTimeout

from family_tasks.helpers.config_models.store import JsonBinModel
from family_tasks.helpers.errors import StoreConflictError, StoreUnavailableError
from family_tasks.helpers.http import aiohttp_session
from family_tasks.helpers.logging import logger
from family_tasks.helpers.monitoring import counter_add, store_conflict
from family_tasks.models.document import DocumentModel, StoredDocumentModel
from family_tasks.models.readiness import ReadinessEnum
from family_tasks.persistence.istore import IStore
from family_tasks.persistence.record import parse_record, record_etag


class JsonBinStore(IStore):
    """
    A document stored as a JSONBin.io bin.

    JSONBin has no conditional write, the etag is a hash of the content, checked by re-reading the bin right before the overwrite. This narrows the race window between two writers, it does not close it.

    See: https://jsonbin.io/api-reference/bins/update
    """

    _config: JsonBinModel

    def __init__(self, config: JsonBinModel):
        logger.info("Using JSONBin bin %s", config.bin_id)
        self._config = config

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the JSONBin store.

        Only the read is tested, a write would create a new bin version on each check.
        """
        try:
            await self._get_record()
            return ReadinessEnum.OK
        except StoreUnavailableError:
            logger.exception("Readiness test failed")
        return ReadinessEnum.FAIL

    async def read(self) -> StoredDocumentModel:
        record = await self._get_record()
        return StoredDocumentModel(
            document=parse_record(record),
            etag=record_etag(record),
        )

    async def write(
        self,
        document: DocumentModel,
        etag: str,
    ) -> str:
        # Check the document did not change since the caller read it
        current_etag = record_etag(await self._get_record())
        if current_etag != etag:
            counter_add(store_conflict, 1)
            raise StoreConflictError(
                "Document changed since it was read",
                actual=current_etag,
                expected=etag,
            )

        record = document.to_record()
        await self._put_record(record)
        logger.debug("Document saved to bin %s", self._config.bin_id)
        return record_etag(record)

    async def _get_record(self) -> Any:
        url = f"{self._config.endpoint}/b/{self._config.bin_id}/latest"
        session = await aiohttp_session()
        try:
            async with session.get(
                headers=self._headers(),
                timeout=ClientTimeout(total=self._config.timeout_sec),
                url=url,
            ) as res:
                if res.status != 200:
                    raise StoreUnavailableError(
                        "JSONBin read refused",
                        body=(await res.text())[:200],
                        status=res.status,
                    )
                payload = await res.json(content_type=None)
        except (ClientError, TimeoutError, ValueError) as e:
            raise StoreUnavailableError("JSONBin read failed", error=str(e)) from e

        if not isinstance(payload, dict):
            raise StoreUnavailableError("JSONBin answered an unexpected payload")
        return payload.get("record")

    async def _put_record(self, record: dict[str, Any]) -> None:
        url = f"{self._config.endpoint}/b/{self._config.bin_id}"
        session = await aiohttp_session()
        try:
            async with session.put(
                headers=self._headers(),
                json=record,
                timeout=ClientTimeout(total=self._config.timeout_sec),
                url=url,
            ) as res:
                if res.status != 200:
                    raise StoreUnavailableError(
                        "JSONBin write refused",
                        body=(await res.text())[:200],
                        status=res.status,
                    )
        except (ClientError, TimeoutError) as e:
            raise StoreUnavailableError("JSONBin write failed", error=str(e)) from e

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-Master-Key": self._config.access_key.get_secret_value(),
        }
