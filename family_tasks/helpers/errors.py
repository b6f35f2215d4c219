from typing import Any


class ReminderError(Exception):
    """
    Base error for the task and family operations.

    `context` carries the identifiers useful to the caller and to the logs, it is never shown as-is to end users.
    """

    context: dict[str, Any]
    message: str

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.context = context
        self.message = message


class StoreUnavailableError(ReminderError):
    """
    The document store could not be read or written (network, timeout, remote error).
    """


class StoreConflictError(ReminderError):
    """
    The document changed between the read and the write, the write was refused.
    """


class InputValidationError(ReminderError):
    """
    Caller-supplied input violates a constraint.
    """


class NotFoundError(ReminderError):
    """
    The referenced task or family does not exist.
    """


class ForbiddenError(ReminderError):
    """
    The access policy denied the operation.
    """


class AlreadyMemberError(ReminderError):
    """
    The identity already belongs to a family.
    """


class DeliveryError(ReminderError):
    """
    A message could not be delivered to one recipient.

    Always recovered where it happens, never raised to the caller of a task operation or a reminder tick.
    """
