from family_tasks.helpers.logging import logger
from family_tasks.models.readiness import ReadinessEnum
from family_tasks.persistence.ichannel import IChannel


class ConsoleChannel(IChannel):
    def __init__(self):
        logger.warning("Using console as channel, no real message will be sent")

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the console channel.
        """
        return ReadinessEnum.OK

    async def send(self, content: str, recipient: str) -> bool:
        logger.info("💬 To %s: %s", recipient, content)
        return True
