from typing import Any

from pydantic import BaseModel, Field

from family_tasks.models.family import FamilyModel
from family_tasks.models.task import TaskModel


class DocumentModel(BaseModel):
    """
    The whole persisted state: every task and every family.

    Always read and written as a whole. Records which could not be parsed are carried along untouched, so a write never drops data the application does not understand.
    """

    groups: dict[str, FamilyModel] = {}
    tasks: list[TaskModel] = []
    unparsed_groups: dict[str, Any] = Field(default={}, exclude=True)
    unparsed_tasks: list[Any] = Field(default=[], exclude=True)

    def to_record(self) -> dict[str, Any]:
        """
        Serialize to the stored JSON layout, with camelCase keys.
        """
        record = self.model_dump(
            by_alias=True,
            mode="json",
        )
        record["tasks"].extend(self.unparsed_tasks)
        for key, raw in self.unparsed_groups.items():
            record["groups"].setdefault(key, raw)
        return record


class StoredDocumentModel(BaseModel):
    document: DocumentModel = Field(default_factory=DocumentModel)
    etag: str
    """Opaque revision token of the read, passed back on write."""
