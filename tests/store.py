from datetime import datetime
from typing import Any

import pytest
from aiohttp import test_utils, web
from pytest_assume.plugin import assume

from family_tasks.helpers.config import CONFIG
from family_tasks.helpers.config_models.store import (
    JsonBinModel,
    MemoryModel,
    ModeEnum,
)
from family_tasks.helpers.errors import StoreConflictError, StoreUnavailableError
from family_tasks.models.document import DocumentModel
from family_tasks.models.family import FamilyModel
from family_tasks.models.readiness import ReadinessEnum
from family_tasks.models.task import TaskModel
from family_tasks.persistence.jsonbin import JsonBinStore
from family_tasks.persistence.memory import MemoryStore
from family_tasks.persistence.record import parse_record, record_etag


@pytest.mark.asyncio(loop_scope="session")
@pytest.mark.repeat(10)  # Catch concurrency issues
async def test_acid(in_one_day: datetime, random_text: str) -> None:
    """
    Test read-modify-write properties of the memory store.

    Steps:
    1. Read the empty document
    2. Write a task
    3. Check it is read back
    4. Check a stale write is refused
    """
    store = MemoryStore(MemoryModel())

    # Check empty
    stored = await store.read()
    assume(stored.document.tasks == [])
    assume(stored.document.groups == {})

    # Write
    task = TaskModel(
        due_at=in_one_day,
        owner_id="1",
        title=random_text,
    )
    stored.document.tasks.append(task)
    etag = await store.write(document=stored.document, etag=stored.etag)
    assume(etag != stored.etag)

    # Check point read
    fresh = await store.read()
    assume(fresh.etag == etag)
    assume(fresh.document.tasks == [task])

    # Check stale write is refused, and nothing changed
    with pytest.raises(StoreConflictError):
        await store.write(document=stored.document, etag=stored.etag)
    assume((await store.read()).etag == etag)


@pytest.mark.asyncio(loop_scope="session")
async def test_read_isolation(in_one_day: datetime) -> None:
    """
    Test a document returned by a read can be mutated without changing the store.
    """
    store = MemoryStore(MemoryModel())
    stored = await store.read()
    stored.document.tasks.append(
        TaskModel(
            due_at=in_one_day,
            owner_id="1",
            title="Not saved",
        )
    )

    assume((await store.read()).document.tasks == [])
    assume(store.record["tasks"] == [])


@pytest.mark.asyncio(loop_scope="session")
async def test_unparsed_records_kept() -> None:
    """
    Test records which cannot be parsed survive a read-modify-write.
    """
    broken_task = {"title": "No owner nor date"}
    broken_group = {"name": "No members", "members": []}
    store = MemoryStore(
        MemoryModel(),
        record={
            "groups": {"g-broken": broken_group},
            "tasks": [broken_task],
        },
    )

    stored = await store.read()
    assume(stored.document.tasks == [])
    assume(stored.document.groups == {})
    assume(stored.document.unparsed_tasks == [broken_task])

    stored.document.groups["g-1"] = FamilyModel(
        created_by="1",
        id="g-1",
        members={"1"},
        name="Home",
    )
    await store.write(document=stored.document, etag=stored.etag)

    record = store.record
    assume(broken_task in record["tasks"])
    assume(record["groups"]["g-broken"] == broken_group)
    assume(record["groups"]["g-1"]["members"] == ["1"])


def test_parse_legacy_layout() -> None:
    """
    Test groups stored as a list under the historical `families` key.
    """
    document = parse_record(
        {
            "families": [
                {
                    "createdBy": 1,
                    "id": 1700000000000,
                    "members": [1, 2],
                    "name": "Home",
                }
            ],
            "tasks": [],
        }
    )

    assume(list(document.groups) == ["1700000000000"])
    assume(document.groups["1700000000000"].members == {"1", "2"})


@pytest.mark.parametrize(
    "record",
    [
        pytest.param(None, id="none"),
        pytest.param({}, id="empty"),
        pytest.param([], id="list"),
        pytest.param("garbage", id="string"),
    ],
)
def test_parse_empty(record) -> None:
    document = parse_record(record)

    assume(document.tasks == [])
    assume(document.groups == {})


def test_record_etag() -> None:
    assume(record_etag({"a": 1, "b": [1, 2]}) == record_etag({"b": [1, 2], "a": 1}))
    assume(record_etag({"a": 1}) != record_etag({"a": 2}))


def test_config_instance() -> None:
    """
    Test the configured store is the memory one, and is a singleton.
    """
    assume(CONFIG.store.mode == ModeEnum.MEMORY)
    assume(isinstance(CONFIG.store.instance, MemoryStore))
    assume(CONFIG.store.instance is CONFIG.store.instance)


def _jsonbin_app(state: dict[str, Any]) -> web.Application:
    """
    Minimal JSONBin v3 API, holding one bin in `state["record"]`.
    """

    def _authorized(request: web.Request) -> bool:
        return request.headers.get("X-Master-Key") == "key"

    async def _latest(request: web.Request) -> web.Response:
        if not _authorized(request):
            return web.json_response({"message": "Invalid key"}, status=401)
        return web.json_response(
            {
                "metadata": {"id": request.match_info["bin_id"]},
                "record": state["record"],
            }
        )

    async def _update(request: web.Request) -> web.Response:
        if not _authorized(request):
            return web.json_response({"message": "Invalid key"}, status=401)
        state["record"] = await request.json()
        state["puts"] += 1
        return web.json_response({"record": state["record"]})

    app = web.Application()
    app.router.add_get("/b/{bin_id}/latest", _latest)
    app.router.add_put("/b/{bin_id}", _update)
    return app


def _jsonbin_store(
    server: test_utils.TestServer,
    access_key: str = "key",
) -> JsonBinStore:
    return JsonBinStore(
        JsonBinModel(
            access_key=access_key,  # pyright: ignore
            bin_id="bin-1",
            endpoint=str(server.make_url("")).rstrip("/"),
        )
    )


@pytest.mark.asyncio(loop_scope="session")
async def test_jsonbin_conflict(in_one_day: datetime) -> None:
    """
    Test a JSONBin write is refused when the bin content changed since it was read.

    Steps:
    1. Read the bin
    2. Another writer saves a task
    3. Check the stale write is refused, and the bin kept the other writer's task
    4. Re-read, write again and check both tasks are saved
    """
    state: dict[str, Any] = {"puts": 0, "record": {"groups": {}, "tasks": []}}
    mine = TaskModel(
        due_at=in_one_day,
        owner_id="1",
        title="Mine",
    )
    theirs = TaskModel(
        due_at=in_one_day,
        owner_id="2",
        title="Theirs",
    )

    async with test_utils.TestServer(_jsonbin_app(state)) as server:
        store = _jsonbin_store(server)
        assume(await store.readiness() == ReadinessEnum.OK)

        stored = await store.read()
        assume(stored.document.tasks == [])

        # Another writer saves in between
        state["record"] = {
            "groups": {},
            "tasks": [theirs.model_dump(by_alias=True, mode="json")],
        }

        stored.document.tasks.append(mine)
        with pytest.raises(StoreConflictError):
            await store.write(document=stored.document, etag=stored.etag)
        assume(state["puts"] == 0)
        assume(len(state["record"]["tasks"]) == 1)

        # Replay on a fresh read
        fresh = await store.read()
        assume(fresh.etag != stored.etag)
        fresh.document.tasks.append(mine)
        etag = await store.write(document=fresh.document, etag=fresh.etag)

        assume(state["puts"] == 1)
        saved = await store.read()
        assume(saved.etag == etag)
        assume({task.title for task in saved.document.tasks} == {"Mine", "Theirs"})


@pytest.mark.asyncio(loop_scope="session")
async def test_jsonbin_refused() -> None:
    """
    Test a JSONBin refusing requests is reported as unavailable, not as an empty bin.
    """
    state: dict[str, Any] = {"puts": 0, "record": {"groups": {}, "tasks": []}}

    async with test_utils.TestServer(_jsonbin_app(state)) as server:
        store = _jsonbin_store(server, access_key="wrong")

        assume(await store.readiness() == ReadinessEnum.FAIL)
        with pytest.raises(StoreUnavailableError):
            await store.read()
        with pytest.raises(StoreUnavailableError):
            await store.write(document=DocumentModel(), etag="any")
        assume(state["puts"] == 0)
