import asyncio
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Annotated

from fastapi import FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from family_tasks.helpers.cache import get_scheduler
from family_tasks.helpers.config import CONFIG
from family_tasks.helpers.errors import (
    AlreadyMemberError,
    ForbiddenError,
    InputValidationError,
    NotFoundError,
    ReminderError,
    StoreConflictError,
    StoreUnavailableError,
)
from family_tasks.helpers.families import FamilyRegistry
from family_tasks.helpers.http import aiohttp_session
from family_tasks.helpers.logging import logger
from family_tasks.helpers.monitoring import start_as_current_span
from family_tasks.helpers.reminders import ReminderScheduler
from family_tasks.helpers.task_service import TaskService
from family_tasks.helpers.tasks import TaskRepository
from family_tasks.models.error import ErrorInnerModel, ErrorModel
from family_tasks.models.family import (
    FamilyCreateModel,
    FamilyInviteModel,
    FamilyModel,
)
from family_tasks.models.readiness import (
    ReadinessCheckModel,
    ReadinessEnum,
    ReadinessModel,
)
from family_tasks.models.task import TaskCreateModel, TaskModel, TaskPatchModel

# First log
logger.info(
    "family-tasks v%s",
    CONFIG.version,
)

# Persistences
_channel = CONFIG.channel.instance
_store = CONFIG.store.instance

# Core, registry is shared by reference
_registry = FamilyRegistry(
    config=CONFIG.families,
    store=_store,
)
_repository = TaskRepository(_store)
_reminders = ReminderScheduler(
    channel=_channel,
    config=CONFIG.reminders,
    registry=_registry,
    repository=_repository,
)
_service = TaskService(
    channel=_channel,
    delivery_timeout_sec=CONFIG.reminders.delivery_timeout_sec,
    registry=_registry,
    repository=_repository,
)

# Error kinds to HTTP status
_ERROR_STATUSES: list[tuple[type[ReminderError], HTTPStatus]] = [
    (AlreadyMemberError, HTTPStatus.CONFLICT),
    (ForbiddenError, HTTPStatus.FORBIDDEN),
    (InputValidationError, HTTPStatus.BAD_REQUEST),
    (NotFoundError, HTTPStatus.NOT_FOUND),
    (StoreConflictError, HTTPStatus.CONFLICT),
    (StoreUnavailableError, HTTPStatus.SERVICE_UNAVAILABLE),
]

ActorHeader = Annotated[
    str,
    Header(
        alias="X-Actor-Id",
        description="Identity of the caller, trusted as given.",
        min_length=1,
    ),
]


@asynccontextmanager
async def lifespan(app: FastAPI):  # noqa: ARG001
    async with get_scheduler() as scheduler:
        await scheduler.spawn(_reminders.run_forever())
        try:
            yield

        # Cancel the reminder loop
        finally:
            await scheduler.close()

    # Close HTTP session
    await (await aiohttp_session()).close()


# FastAPI
api = FastAPI(
    description="Personal and family tasks, with reminders sent before they are due.",
    lifespan=lifespan,
    title="family-tasks",
    version=CONFIG.version,
)


@api.get("/health/liveness")
@start_as_current_span("health_liveness_get")
async def health_liveness_get() -> None:
    """
    Check if the service is running.

    Returns a 200 OK if the service is technically running.
    """
    return


@api.get(
    "/health/readiness",
    status_code=HTTPStatus.OK,
)
@start_as_current_span("health_readiness_get")
async def health_readiness_get() -> JSONResponse:
    """
    Check if the service is ready to serve requests.

    Services tested are: store, channel.

    Returns a 200 OK if the service is ready, a 503 Service Unavailable otherwise.
    """
    store_check, channel_check = await asyncio.gather(
        _store.readiness(),
        _channel.readiness(),
    )
    readiness = ReadinessModel(
        status=ReadinessEnum.OK,
        checks=[
            ReadinessCheckModel(id="channel", status=channel_check),
            ReadinessCheckModel(id="startup", status=ReadinessEnum.OK),
            ReadinessCheckModel(id="store", status=store_check),
        ],
    )
    # If one of the checks fails, the whole readiness fails
    status_code = HTTPStatus.OK
    for check in readiness.checks:
        if check.status != ReadinessEnum.OK:
            readiness.status = ReadinessEnum.FAIL
            status_code = HTTPStatus.SERVICE_UNAVAILABLE
            break
    return JSONResponse(
        content=readiness.model_dump(mode="json"),
        status_code=status_code,
    )


@api.get("/tasks")
@start_as_current_span("task_list_get")
async def task_list_get(actor: ActorHeader) -> list[TaskModel]:
    """
    List the tasks visible to the caller: owned ones, and the ones shared with their family.
    """
    return await _service.list_tasks(actor)


@api.post(
    "/tasks",
    status_code=HTTPStatus.CREATED,
)
@start_as_current_span("task_post")
async def task_post(actor: ActorHeader, data: TaskCreateModel) -> TaskModel:
    return await _service.create_task(actor, data)


@api.patch("/tasks/{task_id}")
@start_as_current_span("task_patch")
async def task_patch(
    actor: ActorHeader,
    task_id: str,
    patch: TaskPatchModel,
) -> TaskModel:
    """
    Edit a task. Changing the due date re-arms every reminder.
    """
    return await _service.edit_task(actor, task_id, patch)


@api.delete("/tasks/{task_id}")
@start_as_current_span("task_delete")
async def task_delete(actor: ActorHeader, task_id: str) -> TaskModel:
    return await _service.delete_task(actor, task_id)


@api.get("/families/me")
@start_as_current_span("family_me_get")
async def family_me_get(actor: ActorHeader) -> FamilyModel:
    family = await _service.my_family(actor)
    if not family:
        raise NotFoundError("Actor has no family", actor=actor)
    return family


@api.post(
    "/families",
    status_code=HTTPStatus.CREATED,
)
@start_as_current_span("family_post")
async def family_post(actor: ActorHeader, data: FamilyCreateModel) -> FamilyModel:
    return await _service.create_family(actor, data.name)


@api.post("/families/invite")
@start_as_current_span("family_invite_post")
async def family_invite_post(actor: ActorHeader, data: FamilyInviteModel) -> bool:
    """
    Invite an identity into the caller's family.

    Returns `false` if the identity is already a member.
    """
    return await _service.invite_member(actor, data.invitee_id)


@api.post("/families/leave")
@start_as_current_span("family_leave_post")
async def family_leave_post(actor: ActorHeader) -> bool:
    return await _service.leave_family(actor)


@api.exception_handler(ReminderError)
async def reminder_exception_handler(
    request: Request,  # noqa: ARG001
    exc: ReminderError,
) -> JSONResponse:
    """
    Map domain errors to HTTP status codes, in the standard error format.
    """
    status_code = next(
        (
            status
            for kind, status in _ERROR_STATUSES
            if isinstance(exc, kind)
        ),
        HTTPStatus.INTERNAL_SERVER_ERROR,
    )
    if status_code >= HTTPStatus.INTERNAL_SERVER_ERROR:
        logger.error("Request failed: %s %s", exc.message, exc.context)
    return _standard_error(
        kind=exc.__class__.__name__,
        message=exc.message,
        status_code=status_code,
    )


@api.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request,  # noqa: ARG001
    exc: StarletteHTTPException,
) -> JSONResponse:
    """
    Handle HTTP exceptions and return the error in a standard format.
    """
    return _standard_error(
        kind="HTTPException",
        message=exc.detail,
        status_code=HTTPStatus(exc.status_code),
    )


@api.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,  # noqa: ARG001
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Handle validation exceptions and return the error in a standard format.
    """
    return _standard_error(
        details=[str(x) for x in exc.errors()],  # Pydantic errors are well formatted
        kind=InputValidationError.__name__,
        message="Validation error",
        status_code=HTTPStatus.BAD_REQUEST,
    )


def _standard_error(
    kind: str,
    message: str,
    status_code: HTTPStatus,
    details: list[str] | None = None,
) -> JSONResponse:
    """
    Generate a standard error response.
    """
    model = ErrorModel(
        error=ErrorInnerModel(
            details=details or [],
            kind=kind,
            message=message,
        )
    )
    return JSONResponse(
        content=model.model_dump(mode="json"),
        status_code=status_code,
    )
