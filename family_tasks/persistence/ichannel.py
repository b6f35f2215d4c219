from abc import ABC, abstractmethod

from family_tasks.helpers.monitoring import start_as_current_span
from family_tasks.models.readiness import ReadinessEnum


class IChannel(ABC):
    @abstractmethod
    @start_as_current_span("channel_readiness")
    async def readiness(self) -> ReadinessEnum:
        pass

    @abstractmethod
    @start_as_current_span("channel_send")
    async def send(self, content: str, recipient: str) -> bool:
        """
        Send a text message to one recipient.

        Returns `False` if the message was not delivered, never raises for a delivery failure.
        """
