from typing import Annotated

from pydantic import BeforeValidator, Field


def _to_identity(value: object) -> object:
    """
    Normalize a chat identity to a string.

    Telegram chat ids are numbers in most payloads but strings in others, both must compare equal. Booleans are rejected as they are ints in Python.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, str):
        return value.strip()
    return value


Identity = Annotated[
    str,
    BeforeValidator(_to_identity),
    Field(min_length=1, max_length=64),
]
