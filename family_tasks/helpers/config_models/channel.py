from enum import Enum
from functools import cached_property

from pydantic import BaseModel, Field, SecretStr, ValidationInfo, field_validator

from family_tasks.persistence.ichannel import IChannel


class ModeEnum(str, Enum):
    CONSOLE = "console"
    """Print messages in the logs, nothing is sent."""
    TELEGRAM = "telegram"
    """Use a Telegram bot."""


class ConsoleModel(BaseModel, frozen=True):
    @cached_property
    def instance(self) -> IChannel:
        from family_tasks.persistence.console import (
            ConsoleChannel,
        )

        return ConsoleChannel()


class TelegramModel(BaseModel, frozen=True):
    bot_token: SecretStr
    endpoint: str = "https://api.telegram.org"
    timeout_sec: int = Field(default=10, ge=1)

    @cached_property
    def instance(self) -> IChannel:
        from family_tasks.persistence.telegram import (
            TelegramChannel,
        )

        return TelegramChannel(self)


class ChannelModel(BaseModel):
    # Mode first, validators below read it
    mode: ModeEnum = ModeEnum.CONSOLE
    console: ConsoleModel | None = ConsoleModel()  # Object is fully defined by default
    telegram: TelegramModel | None = Field(default=None, validate_default=True)

    @field_validator("telegram")
    @classmethod
    def _validate_telegram(
        cls,
        telegram: TelegramModel | None,
        info: ValidationInfo,
    ) -> TelegramModel | None:
        if not telegram and info.data.get("mode", None) == ModeEnum.TELEGRAM:
            raise ValueError("Telegram config required")
        return telegram

    @cached_property
    def instance(self) -> IChannel:
        if self.mode == ModeEnum.CONSOLE:
            assert self.console
            return self.console.instance

        assert self.telegram
        return self.telegram.instance
