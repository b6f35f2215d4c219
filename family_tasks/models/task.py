from datetime import UTC, datetime
from typing import Annotated, Any, Literal
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from family_tasks.helpers.pydantic_types.identities import Identity

LEGACY_NOTIFIED = "legacy"
"""Marker for records written with the single `notified: true` flag, counts as every threshold delivered."""

_camel_config = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    str_strip_whitespace=True,
)


def _as_utc(value: datetime) -> datetime:
    """
    Read naive datetimes as UTC, convert aware ones to UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class PersonalScopeModel(BaseModel):
    model_config = _camel_config

    kind: Literal["personal"] = "personal"


class SharedScopeModel(BaseModel):
    model_config = _camel_config

    group_id: str = Field(min_length=1)
    kind: Literal["shared"] = "shared"


ScopeModel = Annotated[
    PersonalScopeModel | SharedScopeModel,
    Field(discriminator="kind"),
]


class TaskModel(BaseModel):
    model_config = _camel_config

    # Immutable fields
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), frozen=True)
    id: str = Field(default_factory=lambda: str(uuid4()), frozen=True)
    owner_id: Identity = Field(frozen=True)
    # Editable fields
    due_at: datetime
    notified_thresholds: set[str] = set()
    scope: ScopeModel = PersonalScopeModel()
    title: str = Field(min_length=1, max_length=200)

    @model_validator(mode="before")
    @classmethod
    def _upgrade_legacy(cls, data: Any) -> Any:
        """
        Read records written by the first versions of the bot.

        Those used `userId`, `datetime`, `notified: bool` and an optional `familyId`, without any schema version.
        """
        if not isinstance(data, dict):
            return data
        data = dict(data)

        if "userId" in data and not {"ownerId", "owner_id"} & data.keys():
            data["ownerId"] = data.pop("userId")
        if "datetime" in data and not {"dueAt", "due_at"} & data.keys():
            data["dueAt"] = data.pop("datetime")

        # Boolean flag becomes a set, true means the single reminder already fired
        notified = data.pop("notified", None)
        if not {"notifiedThresholds", "notified_thresholds"} & data.keys():
            data["notifiedThresholds"] = [LEGACY_NOTIFIED] if notified else []

        family_id = data.pop("familyId", None)
        if "scope" not in data and family_id:
            data["scope"] = {"kind": "shared", "groupId": str(family_id)}

        # Legacy ids are creation timestamps in milliseconds
        legacy_id = data.get("id")
        if not {"createdAt", "created_at"} & data.keys() and (
            isinstance(legacy_id, int) or str(legacy_id or "").isdigit()
        ):
            data["createdAt"] = datetime.fromtimestamp(int(legacy_id) / 1000, UTC)

        if isinstance(legacy_id, int):
            data["id"] = str(legacy_id)

        return data

    @field_validator("created_at", "due_at")
    @classmethod
    def _validate_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @field_serializer("notified_thresholds")
    def _serialize_notified_thresholds(self, value: set[str]) -> list[str]:
        # Stable order keeps the stored document diff-friendly
        return sorted(value)

    @property
    def group_id(self) -> str | None:
        """
        Family the task is shared with, `None` for personal tasks.
        """
        if isinstance(self.scope, SharedScopeModel):
            return self.scope.group_id
        return None

    def is_notified(self, threshold_id: str) -> bool:
        return (
            LEGACY_NOTIFIED in self.notified_thresholds
            or threshold_id in self.notified_thresholds
        )


class TaskCreateModel(BaseModel):
    model_config = _camel_config

    due_at: datetime
    scope: ScopeModel = PersonalScopeModel()
    title: str = Field(min_length=1, max_length=200)

    @field_validator("due_at")
    @classmethod
    def _validate_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)


class TaskPatchModel(BaseModel):
    model_config = _camel_config

    due_at: datetime | None = None
    title: str | None = Field(default=None, min_length=1, max_length=200)

    @field_validator("due_at")
    @classmethod
    def _validate_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value) if value else value

    def changes(self) -> dict[str, Any]:
        """
        Fields explicitly set by the caller, keyed by attribute name.
        """
        return {
            field: getattr(self, field)
            for field in self.model_fields_set
            if getattr(self, field) is not None
        }
