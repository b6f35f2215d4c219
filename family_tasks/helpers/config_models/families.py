from pydantic import BaseModel, Field, model_validator


class FamiliesModel(BaseModel):
    legacy_invite_across_groups: bool = False
    """
    Keep the historical invite behaviour: an identity already in a group can be invited into another one.

    Breaks the one-group-per-identity rule, only enable it for compatibility with existing data.
    """
    name_max_length: int = Field(default=50, ge=1)
    name_min_length: int = Field(default=2, ge=1)

    @model_validator(mode="after")
    def _validate_name_bounds(self) -> "FamiliesModel":
        if self.name_min_length > self.name_max_length:
            raise ValueError("name_min_length must be lower or equal to name_max_length")
        return self
