from enum import Enum
from functools import cached_property

from pydantic import BaseModel, Field, SecretStr, ValidationInfo, field_validator

from family_tasks.persistence.istore import IStore


class ModeEnum(str, Enum):
    JSONBIN = "jsonbin"
    """Use a JSONBin.io bin as the document."""
    MEMORY = "memory"
    """Use an in-process document, lost on restart."""


class MemoryModel(BaseModel, frozen=True):
    @cached_property
    def instance(self) -> IStore:
        from family_tasks.persistence.memory import (
            MemoryStore,
        )

        return MemoryStore(self)


class JsonBinModel(BaseModel, frozen=True):
    access_key: SecretStr
    bin_id: str
    endpoint: str = "https://api.jsonbin.io/v3"
    timeout_sec: int = Field(default=10, ge=1)

    @cached_property
    def instance(self) -> IStore:
        from family_tasks.persistence.jsonbin import (
            JsonBinStore,
        )

        return JsonBinStore(self)


class StoreModel(BaseModel):
    # Mode first, validators below read it
    mode: ModeEnum = ModeEnum.MEMORY
    jsonbin: JsonBinModel | None = Field(default=None, validate_default=True)
    memory: MemoryModel | None = Field(
        default=MemoryModel(),  # Object is fully defined by default
        validate_default=True,
    )

    @field_validator("jsonbin")
    @classmethod
    def _validate_jsonbin(
        cls,
        jsonbin: JsonBinModel | None,
        info: ValidationInfo,
    ) -> JsonBinModel | None:
        if not jsonbin and info.data.get("mode", None) == ModeEnum.JSONBIN:
            raise ValueError("JSONBin config required")
        return jsonbin

    @field_validator("memory")
    @classmethod
    def _validate_memory(
        cls,
        memory: MemoryModel | None,
        info: ValidationInfo,
    ) -> MemoryModel | None:
        if not memory and info.data.get("mode", None) == ModeEnum.MEMORY:
            raise ValueError("Memory config required")
        return memory

    @cached_property
    def instance(self) -> IStore:
        if self.mode == ModeEnum.MEMORY:
            assert self.memory
            return self.memory.instance

        assert self.jsonbin
        return self.jsonbin.instance
