import re
from enum import Enum
from functools import wraps
from inspect import iscoroutinefunction
from os import environ

from opentelemetry import metrics, trace
from opentelemetry.instrumentation.aiohttp_client import AioHttpClientInstrumentor
from opentelemetry.metrics import Counter
from opentelemetry.semconv.attributes import service_attributes
from opentelemetry.trace.span import INVALID_SPAN
from opentelemetry.util.types import Attributes, AttributeValue
from structlog.contextvars import bind_contextvars, get_contextvars
from yarl import URL

MODULE_NAME = "family-tasks"
VERSION = environ.get("VERSION", "0.0.0-unknown")


class SpanAttributeEnum(str, Enum):
    """
    OpenTelemetry attributes.

    These attributes are used to follow a task or an actor in the logs and traces.
    """

    ACTOR_ID = "actor.id"
    """Identity calling the operation."""
    FAMILY_ID = "family.id"
    """Family (group) identifier."""
    MESSAGE_RECIPIENT = "message.recipient"
    """Identity receiving a message."""
    REMINDER_THRESHOLD = "reminder.threshold"
    """Threshold identifier being delivered (e.g. 5h, 30m)."""
    TASK_ID = "task.id"
    """Technical task identifier."""

    def attribute(
        self,
        value: AttributeValue,
    ) -> None:
        """
        Set an attribute on the current span, and in the logging context.
        """
        bind_contextvars(**{self.value: value})

        span = trace.get_current_span()
        if span == INVALID_SPAN:
            return
        span.set_attribute(self.value, value)


class SpanMeterEnum(str, Enum):
    REMINDER_DELIVERY_FAILED = "reminder.delivery.failed"
    """Reminder messages which could not be delivered."""
    REMINDER_DELIVERY_SENT = "reminder.delivery.sent"
    """Reminder messages delivered."""
    STORE_CONFLICT = "store.conflict"
    """Writes rejected because the document changed since it was read."""

    def counter(
        self,
        unit: str,
    ) -> Counter:
        """
        Create a counter metric.
        """
        return meter.create_counter(
            description=self.__doc__ or "",
            name=self.value,
            unit=unit,
        )


_BOT_TOKEN_RE = re.compile(r"/bot[^/]+/")


def _redact_url(url: URL) -> str:
    """
    Hide the Telegram bot token, which is part of the API path.
    """
    return _BOT_TOKEN_RE.sub("/bot***/", str(url))


# Instrument aiohttp, store and channel clients both use it
AioHttpClientInstrumentor().instrument(url_filter=_redact_url)

_default_attributes = {
    service_attributes.SERVICE_NAME: MODULE_NAME,
    service_attributes.SERVICE_VERSION: VERSION,
}

# Exporters are left to the OTEL SDK environment configuration
tracer = trace.get_tracer(
    attributes=_default_attributes,
    instrumenting_module_name=MODULE_NAME,
)
meter = metrics.get_meter(
    name=MODULE_NAME,
)

reminder_delivery_failed = SpanMeterEnum.REMINDER_DELIVERY_FAILED.counter("messages")
reminder_delivery_sent = SpanMeterEnum.REMINDER_DELIVERY_SENT.counter("messages")
store_conflict = SpanMeterEnum.STORE_CONFLICT.counter("writes")


def counter_add(
    metric: Counter,
    value: float | int,
):
    """
    Add a counter metric value with context attributes.
    """
    metric.add(
        amount=value,
        attributes={
            # Context attributes can override default attributes
            **_default_attributes,
            **get_contextvars(),
        },
    )


def start_as_current_span(
    name: str,
    attributes: Attributes = None,
):
    """
    Decorator to start an OTEL span for the function and set it as the current.
    """

    def _wrapper(func):
        @wraps(func)
        def _inner(*args, **kwargs):
            with tracer.start_as_current_span(
                attributes=attributes,
                name=name,
            ):
                return func(*args, **kwargs)

        @wraps(func)
        async def _async_inner(*args, **kwargs):
            with tracer.start_as_current_span(
                attributes=attributes,
                name=name,
            ):
                return await func(*args, **kwargs)

        return _async_inner if iscoroutinefunction(func) else _inner

    return _wrapper

