import hashlib
import json
from typing import Any

from pydantic import ValidationError

from family_tasks.helpers.logging import logger
from family_tasks.models.document import DocumentModel
from family_tasks.models.family import FamilyModel
from family_tasks.models.task import TaskModel


def parse_record(record: Any) -> DocumentModel:
    """
    Parse a stored record, one item at a time.

    An invalid task or family is logged and kept aside as raw data, it does not invalidate the rest of the document.
    """
    if not record:
        return DocumentModel()
    if not isinstance(record, dict):
        logger.warning("Document is not an object, ignoring it: %s", type(record))
        return DocumentModel()

    tasks: list[TaskModel] = []
    unparsed_tasks: list[Any] = []
    for raw in record.get("tasks") or []:
        try:
            tasks.append(TaskModel.model_validate(raw))
        except ValidationError as e:
            logger.warning("Unparsable task, kept as-is: %s", e.errors())
            unparsed_tasks.append(raw)

    # First versions stored groups under "families"
    raw_groups = record.get("groups", record.get("families")) or {}
    if isinstance(raw_groups, list):
        raw_groups = {
            str(raw.get("id")): raw for raw in raw_groups if isinstance(raw, dict)
        }
    groups: dict[str, FamilyModel] = {}
    unparsed_groups: dict[str, Any] = {}
    for key, raw in raw_groups.items():
        try:
            # Legacy ids are numbers, or only stored as the key
            data = raw
            if isinstance(raw, dict):
                data = {**raw, "id": str(raw.get("id", key))}
            family = FamilyModel.model_validate(data)
            groups[family.id] = family
        except ValidationError as e:
            logger.warning("Unparsable family %s, kept as-is: %s", key, e.errors())
            unparsed_groups[key] = raw

    return DocumentModel(
        groups=groups,
        tasks=tasks,
        unparsed_groups=unparsed_groups,
        unparsed_tasks=unparsed_tasks,
    )


def record_etag(record: Any) -> str:
    """
    Compute a revision token from the record content.

    JSON is canonicalized (sorted keys, no whitespace) so the same content always gives the same token.
    """
    canonical = json.dumps(
        record,
        ensure_ascii=False,
        separators=(",", ":"),
        sort_keys=True,
    )
    return hashlib.sha256(canonical.encode(), usedforsecurity=False).hexdigest()
