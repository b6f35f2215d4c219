from family_tasks.helpers.config_models.families import FamiliesModel
from family_tasks.helpers.errors import (
    AlreadyMemberError,
    InputValidationError,
    ReminderError,
)
from family_tasks.helpers.logging import logger
from family_tasks.helpers.monitoring import SpanAttributeEnum
from family_tasks.models.document import DocumentModel, StoredDocumentModel
from family_tasks.models.family import FamilyModel
from family_tasks.persistence.istore import IStore, conflict_retry


class FamilyRegistry:
    """
    Families (groups of identities sharing tasks), loaded from the shared document.

    State is an in-memory copy with an explicit lifecycle: `load()` refreshes it from the store (or from a snapshot already read), `commit()` writes it back. Mutating operations always reload before deciding.

    An identity belongs to at most one family. The rule is enforced here, the store knows nothing about it. Lookups go through an inverted index identity -> family, built in document order so the first family wins if stored data breaks the rule.
    """

    _config: FamiliesModel
    _document: DocumentModel | None = None
    _etag: str | None = None
    _groups: dict[str, FamilyModel]
    _index: dict[str, str]
    _store: IStore

    def __init__(self, config: FamiliesModel, store: IStore):
        self._config = config
        self._groups = {}
        self._index = {}
        self._store = store

    async def load(self, stored: StoredDocumentModel | None = None) -> None:
        """
        Refresh the registry.

        If `stored` is given, it is used as-is and no I/O happens. Otherwise the document is read, raising `StoreUnavailableError` on failure.
        """
        if not stored:
            stored = await self._store.read()
        self._document = stored.document
        self._etag = stored.etag
        self._groups = dict(stored.document.groups)
        self._reindex()

    async def commit(self) -> None:
        """
        Write the families back, with the rest of the document as it was loaded.

        Raises `StoreConflictError` if the document changed since the last load.
        """
        assert self._document is not None and self._etag is not None, (
            "Registry must be loaded before commit"
        )
        self._document.groups = dict(self._groups)
        self._etag = await self._store.write(
            document=self._document,
            etag=self._etag,
        )

    def group_of(self, identity: str) -> str | None:
        return self._index.get(str(identity))

    def get(self, group_id: str) -> FamilyModel | None:
        return self._groups.get(group_id)

    def members(self, group_id: str) -> set[str]:
        family = self._groups.get(group_id)
        return set(family.members) if family else set()

    def families(self) -> list[FamilyModel]:
        return list(self._groups.values())

    @conflict_retry
    async def create(self, identity: str, name: str) -> FamilyModel:
        """
        Create a family with `identity` as its only member.

        Raises `InputValidationError` if the name length is out of bounds, `AlreadyMemberError` if the identity already has a family.
        """
        name = name.strip()
        if not self._config.name_min_length <= len(name) <= self._config.name_max_length:
            raise InputValidationError(
                f"Family name must be between {self._config.name_min_length} and {self._config.name_max_length} characters",
                name=name,
            )

        await self.load()
        current = self.group_of(identity)
        if current:
            raise AlreadyMemberError(
                "Identity already belongs to a family",
                family_id=current,
                identity=identity,
            )

        family = FamilyModel(
            created_by=identity,
            members={identity},
            name=name,
        )
        previous = self._snapshot()
        self._groups[family.id] = family
        self._index[family.created_by] = family.id
        await self._commit_or_rollback(previous)

        SpanAttributeEnum.FAMILY_ID.attribute(family.id)
        logger.info("Family %s created by %s", family.id, identity)
        return family

    @conflict_retry
    async def invite(self, group_id: str, identity: str) -> bool:
        """
        Add `identity` to a family.

        Returns `False` if the family does not exist or if the identity is already a member. Raises `AlreadyMemberError` if the identity belongs to another family, unless the legacy behaviour is enabled in the configuration, in which case it is added anyway and ends up in two families.
        """
        await self.load()
        family = self._groups.get(group_id)
        if not family:
            logger.info("Cannot invite %s, family %s does not exist", identity, group_id)
            return False
        if identity in family.members:
            logger.info("%s is already a member of family %s", identity, group_id)
            return False

        current = self.group_of(identity)
        if current and current != group_id:
            if not self._config.legacy_invite_across_groups:
                raise AlreadyMemberError(
                    "Identity already belongs to another family",
                    family_id=current,
                    identity=identity,
                )
            logger.warning(
                "%s joins family %s while still in family %s (legacy invite)",
                identity,
                group_id,
                current,
            )

        previous = self._snapshot()
        family.members.add(identity)
        self._index.setdefault(identity, group_id)
        await self._commit_or_rollback(previous)

        logger.info("%s invited to family %s", identity, group_id)
        return True

    @conflict_retry
    async def leave(self, identity: str) -> bool:
        """
        Remove `identity` from its family, deleting the family once empty.

        Returns `False` if the identity has no family.
        """
        await self.load()
        group_id = self.group_of(identity)
        if not group_id:
            return False

        previous = self._snapshot()
        family = self._groups[group_id]
        family.members.discard(identity)
        if not family.members:
            del self._groups[group_id]
            logger.info("Family %s deleted, no member left", group_id)
        self._reindex()
        await self._commit_or_rollback(previous)

        logger.info("%s left family %s", identity, group_id)
        return True

    async def _commit_or_rollback(self, previous: dict[str, FamilyModel]) -> None:
        """
        Commit, restoring the previous in-memory state if the write fails.
        """
        try:
            await self.commit()
        except ReminderError:
            self._groups = previous
            self._reindex()
            raise

    def _snapshot(self) -> dict[str, FamilyModel]:
        return {
            group_id: family.model_copy(deep=True)
            for group_id, family in self._groups.items()
        }

    def _reindex(self) -> None:
        self._index = {}
        for family in self._groups.values():
            for member in family.members:
                self._index.setdefault(member, family.id)
