import json
import random
import string
from datetime import UTC, datetime, timedelta
from os import environ

# Tests run against the memory store and the console channel, set before the config loads
environ.setdefault(
    "CONFIG_JSON",
    json.dumps(
        {
            "channel": {"mode": "console"},
            "monitoring": {"logging": {"app_level": "DEBUG"}},
            "store": {"mode": "memory"},
            "version": "0.0.0-test",
        }
    ),
)

import pytest  # noqa: E402

from family_tasks.helpers.config_models.families import FamiliesModel  # noqa: E402
from family_tasks.helpers.config_models.reminders import RemindersModel  # noqa: E402
from family_tasks.helpers.config_models.store import MemoryModel  # noqa: E402
from family_tasks.helpers.errors import (  # noqa: E402
    StoreConflictError,
    StoreUnavailableError,
)
from family_tasks.helpers.families import FamilyRegistry  # noqa: E402
from family_tasks.helpers.reminders import ReminderScheduler  # noqa: E402
from family_tasks.helpers.task_service import TaskService  # noqa: E402
from family_tasks.helpers.tasks import TaskRepository  # noqa: E402
from family_tasks.models.document import (  # noqa: E402
    DocumentModel,
    StoredDocumentModel,
)
from family_tasks.models.readiness import ReadinessEnum  # noqa: E402
from family_tasks.persistence.ichannel import IChannel  # noqa: E402
from family_tasks.persistence.memory import MemoryStore  # noqa: E402


class ChannelMock(IChannel):
    """
    Channel recording every message, failing for the recipients listed in `failing`.
    """

    failing: set[str]
    sent: list[tuple[str, str]]

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.sent = []

    async def readiness(self) -> ReadinessEnum:
        return ReadinessEnum.OK

    async def send(self, content: str, recipient: str) -> bool:
        if recipient in self.failing:
            raise ConnectionError(f"Cannot reach {recipient}")
        self.sent.append((recipient, content))
        return True

    def recipients(self) -> list[str]:
        return [recipient for recipient, _ in self.sent]


class UnavailableStoreMock(MemoryStore):
    """
    Memory store which cannot be read once `down` is set.
    """

    down: bool = False

    async def read(self) -> StoredDocumentModel:
        if self.down:
            raise StoreUnavailableError("Store is down")
        return await super().read()


class WriteFailingStoreMock(MemoryStore):
    """
    Memory store which can be read but not written once `down` is set.
    """

    down: bool = False
    writes: int = 0

    async def write(self, document: DocumentModel, etag: str) -> str:
        self.writes += 1
        if self.down:
            raise StoreUnavailableError("Store is down")
        return await super().write(document=document, etag=etag)


class RacingStoreMock(MemoryStore):
    """
    Memory store where another writer wins the race on the next `conflicts` writes.

    The concurrent writer only bumps the revision, content is unchanged.
    """

    conflicts: int = 0
    writes: int = 0

    async def write(self, document: DocumentModel, etag: str) -> str:
        self.writes += 1
        if self.conflicts > 0:
            self.conflicts -= 1
            # Another writer saved in between
            self._revision += 1
            raise StoreConflictError("Document changed since it was read")
        return await super().write(document=document, etag=etag)


@pytest.fixture
def random_text() -> str:
    text = "".join(random.choice(string.ascii_letters) for _ in range(20))
    return text


@pytest.fixture
def now() -> datetime:
    return datetime.now(UTC).replace(microsecond=0)


@pytest.fixture
def in_one_day(now: datetime) -> datetime:
    return now + timedelta(days=1)


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore(MemoryModel())


@pytest.fixture
def channel() -> ChannelMock:
    return ChannelMock()


@pytest.fixture
def families_config() -> FamiliesModel:
    return FamiliesModel()


@pytest.fixture
def registry(families_config: FamiliesModel, store: MemoryStore) -> FamilyRegistry:
    return FamilyRegistry(
        config=families_config,
        store=store,
    )


@pytest.fixture
def repository(store: MemoryStore) -> TaskRepository:
    return TaskRepository(store)


@pytest.fixture
def scheduler(
    channel: ChannelMock,
    registry: FamilyRegistry,
    repository: TaskRepository,
) -> ReminderScheduler:
    return ReminderScheduler(
        channel=channel,
        config=RemindersModel(),
        registry=registry,
        repository=repository,
    )


@pytest.fixture
def service(
    channel: ChannelMock,
    registry: FamilyRegistry,
    repository: TaskRepository,
) -> TaskService:
    return TaskService(
        channel=channel,
        delivery_timeout_sec=1,
        registry=registry,
        repository=repository,
    )
