from datetime import timedelta

from pydantic import BaseModel, Field, field_validator


class RemindersModel(BaseModel):
    delivery_timeout_sec: float = Field(default=10, gt=0)
    interval_sec: float = Field(default=60, gt=0)
    thresholds: list[timedelta] = [
        timedelta(hours=5),
        timedelta(hours=1),
        timedelta(minutes=30),
        timedelta(minutes=15),
    ]
    wait_first: bool = False

    @field_validator("thresholds")
    @classmethod
    def _validate_thresholds(cls, thresholds: list[timedelta]) -> list[timedelta]:
        """
        Deduplicate and sort thresholds, largest lead time first.
        """
        if not thresholds:
            raise ValueError("At least one threshold is required")
        if any(threshold <= timedelta(0) for threshold in thresholds):
            raise ValueError("Thresholds must be positive durations")
        return sorted(set(thresholds), reverse=True)
