from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel

from family_tasks.helpers.pydantic_types.identities import Identity


class FamilyModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    # Immutable fields
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), frozen=True)
    created_by: Identity = Field(frozen=True)
    id: str = Field(default_factory=lambda: str(uuid4()), frozen=True)
    # Editable fields
    members: set[Identity] = Field(min_length=1)
    name: str  # Length bounds are configuration, checked by the registry

    @field_serializer("members")
    def _serialize_members(self, value: set[str]) -> list[str]:
        return sorted(value)


class FamilyCreateModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    name: str


class FamilyInviteModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    invitee_id: Identity
