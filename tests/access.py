from datetime import datetime

import pytest
from pytest_assume.plugin import assume

from family_tasks.helpers.access import can_access, visible_tasks
from family_tasks.helpers.errors import ForbiddenError
from family_tasks.helpers.families import FamilyRegistry
from family_tasks.helpers.task_service import TaskService
from family_tasks.models.task import (
    SharedScopeModel,
    TaskCreateModel,
    TaskModel,
    TaskPatchModel,
)


@pytest.mark.asyncio(loop_scope="session")
async def test_can_access(in_one_day: datetime, registry: FamilyRegistry) -> None:
    """
    Test the access rule: owner always, family members only for shared tasks.
    """
    family = await registry.create("1", "Home")
    await registry.invite(family.id, "2")

    personal = TaskModel(
        due_at=in_one_day,
        owner_id="1",
        title="Personal",
    )
    shared = TaskModel(
        due_at=in_one_day,
        owner_id="1",
        scope=SharedScopeModel(group_id=family.id),
        title="Shared",
    )

    assume(can_access("1", personal, registry))
    assume(not can_access("2", personal, registry))
    assume(can_access("1", shared, registry))
    assume(can_access("2", shared, registry))
    assume(not can_access("3", shared, registry))

    assume(visible_tasks("2", [personal, shared], registry) == [shared])
    assume(visible_tasks("3", [personal, shared], registry) == [])


@pytest.mark.asyncio(loop_scope="session")
async def test_owner_left_family(in_one_day: datetime, registry: FamilyRegistry) -> None:
    """
    Test the owner keeps access to a shared task after leaving the family.
    """
    family = await registry.create("1", "Home")
    await registry.invite(family.id, "2")
    await registry.leave("1")

    shared = TaskModel(
        due_at=in_one_day,
        owner_id="1",
        scope=SharedScopeModel(group_id=family.id),
        title="Shared",
    )

    assume(can_access("1", shared, registry))
    assume(can_access("2", shared, registry))


@pytest.mark.parametrize(
    "actor, allowed",
    [
        pytest.param("1", True, id="owner"),
        pytest.param("2", True, id="member"),
        pytest.param("3", False, id="outsider"),
    ],
)
@pytest.mark.asyncio(loop_scope="session")
async def test_access_symmetry(
    actor: str,
    allowed: bool,
    in_one_day: datetime,
    registry: FamilyRegistry,
    service: TaskService,
) -> None:
    """
    Test view, edit and delete are all allowed, or all denied.
    """
    family = await registry.create("1", "Home")
    await registry.invite(family.id, "2")
    await registry.create("3", "Elsewhere")
    task = await service.create_task(
        "1",
        TaskCreateModel(
            due_at=in_one_day,
            scope=SharedScopeModel(group_id=family.id),
            title="Groceries",
        ),
    )

    # View
    visible = [listed.id for listed in await service.list_tasks(actor)]
    assume((task.id in visible) == allowed)

    # Edit
    try:
        await service.edit_task(actor, task.id, TaskPatchModel(title="Edited"))
        edited = True
    except ForbiddenError:
        edited = False
    assume(edited == allowed)

    # Delete
    try:
        await service.delete_task(actor, task.id)
        deleted = True
    except ForbiddenError:
        deleted = False
    assume(deleted == allowed)
