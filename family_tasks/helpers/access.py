from family_tasks.helpers.errors import ForbiddenError
from family_tasks.helpers.families import FamilyRegistry
from family_tasks.models.task import TaskModel


def can_access(actor: str, task: TaskModel, registry: FamilyRegistry) -> bool:
    """
    Whether `actor` may see, edit and delete `task`.

    One rule for the three operations: the owner always can, and so does any member of the family a task is shared with.
    """
    if task.owner_id == actor:
        return True
    group_id = task.group_id
    return group_id is not None and registry.group_of(actor) == group_id


def ensure_access(actor: str, task: TaskModel, registry: FamilyRegistry) -> None:
    if not can_access(actor, task, registry):
        raise ForbiddenError(
            "Task is neither owned by nor shared with the actor",
            actor=actor,
            task_id=task.id,
        )


def visible_tasks(
    actor: str,
    tasks: list[TaskModel],
    registry: FamilyRegistry,
) -> list[TaskModel]:
    return [task for task in tasks if can_access(actor, task, registry)]
