from collections.abc import Callable
from datetime import datetime
from typing import TypeVar

from family_tasks.helpers.errors import NotFoundError, StoreUnavailableError
from family_tasks.helpers.logging import logger
from family_tasks.models.document import DocumentModel, StoredDocumentModel
from family_tasks.models.task import TaskModel, TaskPatchModel
from family_tasks.persistence.istore import IStore, conflict_retry

T = TypeVar("T")


class TaskRepository:
    """
    Task list, stored in the shared document.

    Every mutation reads the entire document, changes the task list in memory and overwrites the document. Concurrent writers are detected with the store etag, the losing mutation is replayed on a fresh read.
    """

    _store: IStore

    def __init__(self, store: IStore):
        self._store = store

    async def read(self) -> StoredDocumentModel | None:
        """
        Read the whole document.

        Returns `None` if the store cannot be read, which is not the same as an empty document.
        """
        try:
            return await self._store.read()
        except StoreUnavailableError as e:
            logger.warning("Cannot read the document: %s %s", e.message, e.context)
        return None

    async def list_all(self) -> list[TaskModel] | None:
        """
        List all tasks.

        Returns `None` if the store cannot be read, an empty list if there are truly no tasks.
        """
        stored = await self.read()
        if not stored:
            return None
        return stored.document.tasks

    async def find_by_id(self, task_id: str) -> TaskModel:
        """
        Get a task by its identifier.

        Raises `NotFoundError` if it does not exist, `StoreUnavailableError` if the store cannot be read.
        """
        stored = await self._store.read()
        return stored.document.tasks[self._index(stored.document, task_id)]

    async def append(self, task: TaskModel) -> TaskModel:
        def _append(document: DocumentModel) -> TaskModel:
            document.tasks.append(task)
            return task

        task = await self._mutate(_append)
        logger.info("Task %s created by %s", task.id, task.owner_id)
        return task

    async def update_fields(self, task_id: str, patch: TaskPatchModel) -> TaskModel:
        """
        Update the editable fields of a task.

        Changing the due date clears the delivered reminders, so a rescheduled task is reminded again.
        """
        changes = patch.changes()
        if "due_at" in changes:
            changes["notified_thresholds"] = set()

        def _update(document: DocumentModel) -> TaskModel:
            i = self._index(document, task_id)
            updated = document.tasks[i].model_copy(update=changes)
            document.tasks[i] = updated
            return updated

        task = await self._mutate(_update)
        logger.info("Task %s updated: %s", task_id, sorted(changes))
        return task

    async def remove(self, task_id: str) -> TaskModel:
        def _remove(document: DocumentModel) -> TaskModel:
            return document.tasks.pop(self._index(document, task_id))

        task = await self._mutate(_remove)
        logger.info("Task %s removed", task_id)
        return task

    @conflict_retry
    async def mark_notified(
        self,
        markers: dict[str, tuple[datetime, set[str]]],
    ) -> int:
        """
        Persist delivered thresholds, keyed by task id with the due date they were computed for.

        Markers are merged into a fresh read. A task deleted or rescheduled since the markers were computed is skipped, its reminders must not be considered delivered. Returns the number of thresholds newly marked, nothing is written when it is zero.
        """
        stored = await self._store.read()
        marked = 0
        for task in stored.document.tasks:
            marker = markers.get(task.id)
            if not marker:
                continue
            due_at, thresholds = marker
            if task.due_at != due_at:
                logger.info("Task %s rescheduled during the tick, markers dropped", task.id)
                continue
            new = thresholds - task.notified_thresholds
            if not new:
                continue
            task.notified_thresholds = task.notified_thresholds | new
            marked += len(new)

        if marked:
            await self._store.write(
                document=stored.document,
                etag=stored.etag,
            )
        return marked

    @conflict_retry
    async def _mutate(self, func: Callable[[DocumentModel], T]) -> T:
        stored = await self._store.read()
        res = func(stored.document)
        await self._store.write(
            document=stored.document,
            etag=stored.etag,
        )
        return res

    @staticmethod
    def _index(document: DocumentModel, task_id: str) -> int:
        for i, task in enumerate(document.tasks):
            if task.id == task_id:
                return i
        raise NotFoundError("Task not found", task_id=task_id)
