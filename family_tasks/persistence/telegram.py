from typing import Any

from aiohttp import ClientError, ClientTimeout

from family_tasks.helpers.config_models.channel import TelegramModel
from family_tasks.helpers.errors import DeliveryError
from family_tasks.helpers.http import aiohttp_session, retry_session
from family_tasks.helpers.logging import logger
from family_tasks.models.readiness import ReadinessEnum
from family_tasks.persistence.ichannel import IChannel


class TelegramChannel(IChannel):
    """
    Deliver messages with a Telegram bot.

    Recipients are chat ids, which for a private chat equal the user id.

    See: https://core.telegram.org/bots/api#sendmessage
    """

    _config: TelegramModel

    def __init__(self, config: TelegramModel):
        logger.info("Using Telegram bot API at %s", config.endpoint)
        self._config = config

    async def readiness(self) -> ReadinessEnum:
        """
        Check the readiness of the Telegram bot.

        This only checks the token is accepted by the API.
        """
        session = await aiohttp_session()
        try:
            async with session.get(
                timeout=ClientTimeout(total=self._config.timeout_sec),
                url=self._url("getMe"),
            ) as res:
                payload = await res.json(content_type=None)
                assert res.status == 200 and payload.get("ok")
            return ReadinessEnum.OK
        except AssertionError:
            logger.exception("Readiness test failed")
        except (ClientError, TimeoutError, ValueError):
            logger.exception("Error requesting Telegram")
        return ReadinessEnum.FAIL

    async def send(self, content: str, recipient: str) -> bool:
        logger.info("Sending message to %s", recipient)
        logger.debug("Message content: %s", content)
        client = await retry_session()
        try:
            async with client.post(
                json={
                    "chat_id": recipient,
                    "text": content,
                },
                timeout=ClientTimeout(total=self._config.timeout_sec),
                url=self._url("sendMessage"),
            ) as res:
                payload: dict[str, Any] = await res.json(content_type=None) or {}
                # Blocked bot, unknown chat, rate limit... all final for this message
                if res.status != 200 or not payload.get("ok"):
                    raise DeliveryError(
                        "Telegram refused the message",
                        description=payload.get("description"),
                        status=res.status,
                    )
            logger.debug("Message sent to %s", recipient)
            return True
        except DeliveryError as e:
            logger.warning("Failed message to %s: %s %s", recipient, e.message, e.context)
        except (ClientError, TimeoutError, ValueError):
            logger.exception("Error sending message to %s", recipient)
        return False

    def _url(self, method: str) -> str:
        return f"{self._config.endpoint}/bot{self._config.bot_token.get_secret_value()}/{method}"
