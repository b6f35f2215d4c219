from datetime import UTC, datetime

from family_tasks.helpers.access import ensure_access, visible_tasks
from family_tasks.helpers.errors import (
    ForbiddenError,
    InputValidationError,
    NotFoundError,
    StoreUnavailableError,
)
from family_tasks.helpers.families import FamilyRegistry
from family_tasks.helpers.logging import logger
from family_tasks.helpers.messages import confirmation_text, deliver, invitation_text
from family_tasks.helpers.monitoring import SpanAttributeEnum
from family_tasks.helpers.tasks import TaskRepository
from family_tasks.models.family import FamilyModel
from family_tasks.models.task import (
    SharedScopeModel,
    TaskCreateModel,
    TaskModel,
    TaskPatchModel,
)
from family_tasks.persistence.ichannel import IChannel


class TaskService:
    """
    Task and family operations on behalf of an actor, gated by the access policy.

    The actor identity is trusted as given by the caller.
    """

    _channel: IChannel
    _delivery_timeout_sec: float
    _registry: FamilyRegistry
    _repository: TaskRepository

    def __init__(
        self,
        channel: IChannel,
        delivery_timeout_sec: float,
        registry: FamilyRegistry,
        repository: TaskRepository,
    ):
        self._channel = channel
        self._delivery_timeout_sec = delivery_timeout_sec
        self._registry = registry
        self._repository = repository

    async def create_task(
        self,
        actor: str,
        data: TaskCreateModel,
        now: datetime | None = None,
    ) -> TaskModel:
        SpanAttributeEnum.ACTOR_ID.attribute(actor)
        now = now or datetime.now(UTC)
        if data.due_at <= now:
            raise InputValidationError(
                "Due date must be in the future",
                due_at=str(data.due_at),
            )

        # Shared tasks can only target the family of the actor
        if isinstance(data.scope, SharedScopeModel):
            await self._registry.load()
            family = self._registry.get(data.scope.group_id)
            if not family:
                raise NotFoundError("Family not found", family_id=data.scope.group_id)
            if actor not in family.members:
                raise ForbiddenError(
                    "Cannot share a task with a family the actor is not in",
                    actor=actor,
                    family_id=family.id,
                )

        task = await self._repository.append(
            TaskModel(
                due_at=data.due_at,
                owner_id=actor,
                scope=data.scope,
                title=data.title,
            )
        )
        SpanAttributeEnum.TASK_ID.attribute(task.id)

        # Confirmation is best effort, the task exists anyway
        if not await deliver(
            channel=self._channel,
            content=confirmation_text(task),
            recipient=actor,
            timeout_sec=self._delivery_timeout_sec,
        ):
            logger.warning("Task %s created but confirmation not delivered", task.id)
        return task

    async def list_tasks(self, actor: str) -> list[TaskModel]:
        """
        Tasks visible to the actor, soonest first.

        Raises `StoreUnavailableError` rather than answering an empty list when the store cannot be read.
        """
        stored = await self._repository.read()
        if not stored:
            raise StoreUnavailableError("Cannot list tasks, store unavailable")
        await self._registry.load(stored)
        return sorted(
            visible_tasks(actor, stored.document.tasks, self._registry),
            key=lambda task: task.due_at,
        )

    async def edit_task(
        self,
        actor: str,
        task_id: str,
        patch: TaskPatchModel,
        now: datetime | None = None,
    ) -> TaskModel:
        SpanAttributeEnum.ACTOR_ID.attribute(actor)
        SpanAttributeEnum.TASK_ID.attribute(task_id)
        if not patch.changes():
            raise InputValidationError("Nothing to update", task_id=task_id)
        if patch.due_at and patch.due_at <= (now or datetime.now(UTC)):
            raise InputValidationError(
                "Due date must be in the future",
                due_at=str(patch.due_at),
            )

        await self._authorize(actor, task_id)
        return await self._repository.update_fields(task_id, patch)

    async def delete_task(self, actor: str, task_id: str) -> TaskModel:
        SpanAttributeEnum.ACTOR_ID.attribute(actor)
        SpanAttributeEnum.TASK_ID.attribute(task_id)
        await self._authorize(actor, task_id)
        return await self._repository.remove(task_id)

    async def my_family(self, actor: str) -> FamilyModel | None:
        await self._registry.load()
        group_id = self._registry.group_of(actor)
        return self._registry.get(group_id) if group_id else None

    async def create_family(self, actor: str, name: str) -> FamilyModel:
        SpanAttributeEnum.ACTOR_ID.attribute(actor)
        return await self._registry.create(actor, name)

    async def invite_member(self, actor: str, invitee: str) -> bool:
        """
        Invite `invitee` into the family of the actor.

        Raises `NotFoundError` if the actor has no family. Returns `False` if the invitee is already a member.
        """
        SpanAttributeEnum.ACTOR_ID.attribute(actor)
        await self._registry.load()
        group_id = self._registry.group_of(actor)
        if not group_id:
            raise NotFoundError("Actor has no family", actor=actor)
        SpanAttributeEnum.FAMILY_ID.attribute(group_id)

        if not await self._registry.invite(group_id, invitee):
            return False

        family = self._registry.get(group_id)
        if family and not await deliver(
            channel=self._channel,
            content=invitation_text(family),
            recipient=invitee,
            timeout_sec=self._delivery_timeout_sec,
        ):
            logger.warning("%s invited to family %s but not notified", invitee, group_id)
        return True

    async def leave_family(self, actor: str) -> bool:
        SpanAttributeEnum.ACTOR_ID.attribute(actor)
        return await self._registry.leave(actor)

    async def _authorize(self, actor: str, task_id: str) -> TaskModel:
        task = await self._repository.find_by_id(task_id)
        await self._registry.load()
        ensure_access(actor, task, self._registry)
        return task
