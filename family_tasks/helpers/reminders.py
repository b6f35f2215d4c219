import asyncio
from datetime import UTC, datetime, timedelta

from family_tasks.helpers.config_models.reminders import RemindersModel
from family_tasks.helpers.errors import ReminderError
from family_tasks.helpers.families import FamilyRegistry
from family_tasks.helpers.logging import logger
from family_tasks.helpers.messages import deliver, format_duration, reminder_text
from family_tasks.helpers.monitoring import (
    SpanAttributeEnum,
    counter_add,
    reminder_delivery_failed,
    reminder_delivery_sent,
    start_as_current_span,
)
from family_tasks.helpers.tasks import TaskRepository
from family_tasks.models.reminder import TickReportModel
from family_tasks.models.task import TaskModel
from family_tasks.persistence.ichannel import IChannel


def threshold_id(threshold: timedelta) -> str:
    """
    Stable identifier of a threshold, as stored in the task markers (e.g. `5h`, `30m`).
    """
    return format_duration(threshold)


class ReminderScheduler:
    """
    Polling reconciliation loop sending reminders before tasks are due.

    Each tick reads the whole document once, delivers every threshold crossed and not yet marked, then persists the new markers in a single write. Delivery is at-least-once: a threshold is marked even if some recipients failed, and a lost marker write means the next tick sends it again.

    Reminder precision is bounded by the polling interval. A window missed while the scheduler was not running is never fired once the task is due.
    """

    _channel: IChannel
    _config: RemindersModel
    _registry: FamilyRegistry
    _repository: TaskRepository

    def __init__(
        self,
        channel: IChannel,
        config: RemindersModel,
        registry: FamilyRegistry,
        repository: TaskRepository,
    ):
        self._channel = channel
        self._config = config
        self._registry = registry
        self._repository = repository

    async def run_forever(self) -> None:
        """
        Run a tick every `interval_sec`, until cancelled.

        A failing tick is logged, the next tick is the retry.
        """
        logger.info(
            "Reminder scheduler started, every %s secs, thresholds %s",
            self._config.interval_sec,
            [threshold_id(threshold) for threshold in self._config.thresholds],
        )
        try:
            if self._config.wait_first:
                await asyncio.sleep(self._config.interval_sec)
            while True:
                try:
                    report = await self.tick()
                    logger.debug("Reminder tick done: %s", report.model_dump())
                except Exception:
                    logger.exception("Reminder tick failed")
                await asyncio.sleep(self._config.interval_sec)
        except asyncio.CancelledError:
            logger.info("Reminder scheduler stopped")
            raise

    @start_as_current_span("reminders_tick")
    async def tick(self, now: datetime | None = None) -> TickReportModel:
        now = now or datetime.now(UTC)
        report = TickReportModel(started_at=now)

        # One read for both the tasks and the families
        stored = await self._repository.read()
        if not stored:
            logger.warning("Store unavailable, skipping reminder tick")
            report.store_available = False
            return report
        await self._registry.load(stored)

        markers: dict[str, tuple[datetime, set[str]]] = {}
        for task in stored.document.tasks:
            report.tasks_scanned += 1
            delivered = await self._process_task(
                now=now,
                report=report,
                task=task,
            )
            if delivered:
                markers[task.id] = (task.due_at, delivered)

        # Single batched write, not retried in this tick if it fails
        if markers:
            try:
                report.thresholds_marked = await self._repository.mark_notified(markers)
                report.persisted = True
            except ReminderError as e:
                logger.error(
                    "Cannot save reminder markers, they may be sent again: %s %s",
                    e.message,
                    e.context,
                )

        report.finished_at = datetime.now(UTC)
        return report

    def due_thresholds(self, task: TaskModel, now: datetime) -> list[str]:
        """
        Thresholds crossed and not yet delivered for a task, largest first.

        Nothing is due once the task itself is due.
        """
        remaining = task.due_at - now
        if remaining <= timedelta(0):
            return []
        due: list[str] = []
        for threshold in self._config.thresholds:
            key = threshold_id(threshold)
            if remaining <= threshold and not task.is_notified(key):
                due.append(key)
        return due

    def recipients(self, task: TaskModel) -> set[str]:
        """
        Identities to remind: the owner for a personal task, every family member for a shared one.

        A shared task whose family disappeared falls back to its owner.
        """
        group_id = task.group_id
        if group_id is None:
            return {task.owner_id}
        members = self._registry.members(group_id)
        if not members:
            logger.warning(
                "Family %s of task %s not found, reminding the owner only",
                group_id,
                task.id,
            )
            return {task.owner_id}
        return members

    async def _process_task(
        self,
        now: datetime,
        report: TickReportModel,
        task: TaskModel,
    ) -> set[str]:
        due = self.due_thresholds(task, now)
        if not due:
            return set()

        SpanAttributeEnum.TASK_ID.attribute(task.id)
        recipients = sorted(self.recipients(task))
        remaining = task.due_at - now
        for key in due:
            SpanAttributeEnum.REMINDER_THRESHOLD.attribute(key)
            content = reminder_text(task, remaining, key)
            # Recipients are independent, one failure does not block the others
            results = await asyncio.gather(
                *[
                    deliver(
                        channel=self._channel,
                        content=content,
                        recipient=recipient,
                        timeout_sec=self._config.delivery_timeout_sec,
                    )
                    for recipient in recipients
                ]
            )
            for recipient, success in zip(recipients, results):
                if success:
                    report.reminders_sent += 1
                    counter_add(reminder_delivery_sent, 1)
                else:
                    report.delivery_failures += 1
                    counter_add(reminder_delivery_failed, 1)
                    logger.warning(
                        "Reminder %s for task %s not delivered to %s",
                        key,
                        task.id,
                        recipient,
                    )
            logger.info(
                "Reminder %s for task %s sent to %s/%s recipients",
                key,
                task.id,
                results.count(True),
                len(recipients),
            )
        return set(due)
