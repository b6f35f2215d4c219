from datetime import UTC, datetime

from pydantic import BaseModel, Field


class TickReportModel(BaseModel):
    """
    Outcome of one reminder scheduler tick.
    """

    delivery_failures: int = 0
    finished_at: datetime | None = None
    persisted: bool = False
    reminders_sent: int = 0
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    store_available: bool = True
    tasks_scanned: int = 0
    thresholds_marked: int = 0
