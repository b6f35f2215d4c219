import asyncio
from datetime import timedelta

from family_tasks.helpers.logging import logger
from family_tasks.helpers.monitoring import SpanAttributeEnum
from family_tasks.models.family import FamilyModel
from family_tasks.models.task import TaskModel
from family_tasks.persistence.ichannel import IChannel

_DATE_FORMAT = "%Y-%m-%d %H:%M UTC"


def format_duration(duration: timedelta) -> str:
    """
    Compact duration, e.g. `1h30m`, `15m`, `2d`.

    Seconds are only shown for durations which are not a whole number of minutes.
    """
    total = int(duration.total_seconds())
    parts: list[str] = []
    for unit, size in (("d", 86400), ("h", 3600), ("m", 60), ("s", 1)):
        value, total = divmod(total, size)
        if value:
            parts.append(f"{value}{unit}")
    return "".join(parts) or "0s"


def reminder_text(task: TaskModel, remaining: timedelta, threshold: str) -> str:
    """
    Reminder for one crossed threshold.

    The threshold is named in the text, several can be crossed in the same tick.
    """
    # Rounded to the minute, the polling interval makes seconds meaningless
    minutes = max(round(remaining.total_seconds() / 60), 1)
    return (
        f"🔔 Reminder ({threshold} before)!\n"
        f'"{task.title}" starts in {format_duration(timedelta(minutes=minutes))}\n'
        f"📅 {task.due_at.strftime(_DATE_FORMAT)}"
    )


def confirmation_text(task: TaskModel) -> str:
    return f'✅ Task "{task.title}" added, due {task.due_at.strftime(_DATE_FORMAT)}'


def invitation_text(family: FamilyModel) -> str:
    return f'👪 You were added to the family "{family.name}"'


async def deliver(
    channel: IChannel,
    content: str,
    recipient: str,
    timeout_sec: float,
) -> bool:
    """
    Send a message to one recipient, never raising.

    The send is bounded by `timeout_sec`. A failure is logged and reported as `False`, it is up to the caller to count it.
    """
    SpanAttributeEnum.MESSAGE_RECIPIENT.attribute(recipient)
    try:
        return await asyncio.wait_for(
            channel.send(content=content, recipient=recipient),
            timeout=timeout_sec,
        )
    except TimeoutError:
        logger.warning("Message to %s timed out after %s secs", recipient, timeout_sec)
    except Exception:
        logger.exception("Unknown error while sending message to %s", recipient)
    return False
