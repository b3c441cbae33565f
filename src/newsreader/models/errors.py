from __future__ import annotations


class ReaderError(Exception):
    """Base class for all newsreader errors."""


class StorageError(ReaderError):
    pass


class StorageReadError(StorageError):
    """A stored value could not be read or decoded."""

    def __init__(self, key: str, detail: str = "") -> None:
        self.key = key
        self.message = f"Could not read stored value for {key!r}: {detail}" if detail else f"Could not read stored value for {key!r}"
        super().__init__(self.message)


class StorageWriteError(StorageError):
    """A write or delete against the key-value store did not complete."""

    def __init__(self, key: str, detail: str = "") -> None:
        self.key = key
        self.message = f"Could not write {key!r}: {detail}" if detail else f"Could not write {key!r}"
        super().__init__(self.message)


class NetworkError(ReaderError):
    """Content could not be loaded and no cached copy of any age exists.

    ``reason`` is ``"offline"`` when the request never reached the server and
    ``"server"`` when the server answered with an error.
    """

    OFFLINE = "offline"
    SERVER = "server"

    def __init__(self, message: str, reason: str = OFFLINE, status: int | None = None) -> None:
        self.message = message
        self.reason = reason
        self.status = status
        super().__init__(message)


class NotFoundError(ReaderError):
    def __init__(self, what: str, identity: str) -> None:
        self.identity = identity
        self.message = f"{what} not found: {identity}"
        super().__init__(self.message)
