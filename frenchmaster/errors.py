from __future__ import annotations


class FrenchMasterError(Exception):
    """Base class for content-service failures."""


class StorageUnavailable(FrenchMasterError):
    """The persistence backend could not be opened."""


class ValidationFailure(FrenchMasterError):
    """A record is missing a field its category requires."""


class NotFound(FrenchMasterError):
    """Update/delete target id is absent."""


class DuplicateKey(FrenchMasterError):
    """An add targeted an id that already exists."""

    def __init__(self, table: str, record_id: str) -> None:
        super().__init__(f"{table}: id {record_id!r} already exists")
        self.table = table
        self.record_id = record_id


class MalformedPersistedState(FrenchMasterError):
    """Persisted JSON (exposure log, user mirror) could not be decoded."""
