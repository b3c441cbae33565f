from __future__ import annotations

from abc import ABC, abstractmethod

from newsreader.models.domain import RequestKind, ResponsePage


class SourceError(Exception):
    """Raised by a PageSource when a page could not be fetched."""


class TransportError(SourceError):
    """The request never got an answer: no connection, DNS failure, timeout."""


class ServerError(SourceError):
    """The server answered, but with an error status or an error body."""

    def __init__(self, status: int | None, message: str = "") -> None:
        self.status = status
        self.message = message or f"Server returned status {status}"
        super().__init__(self.message)


class PageSource(ABC):
    """Network side of the fetch layer: one page of content per call."""

    @abstractmethod
    async def fetch(self, kind: RequestKind, discriminator: str, page: int) -> ResponsePage:
        """Fetch one page.

        For ``RequestKind.CATEGORY`` the discriminator is the category id,
        for ``RequestKind.SEARCH`` it is the query text. Raises
        TransportError or ServerError on failure.
        """
