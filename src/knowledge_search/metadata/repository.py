"""Metadata repository interfaces and in-memory adapter."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from knowledge_search.errors import MetadataUnavailable
from knowledge_search.types import DataSourceSnapshot, DocumentSnapshot


class MetadataRepository(Protocol):
    """Batch lookups against the relational metadata store.

    Ids with no record are simply absent from the returned list. A failure of
    the store as a whole raises `MetadataUnavailable`.
    """

    async def find_documents(self, ids: list[str]) -> list[DocumentSnapshot]:
        """Return the documents whose id is in `ids`."""

    async def find_datasources(self, ids: list[str]) -> list[DataSourceSnapshot]:
        """Return the datasources whose id is in `ids`."""


class InMemoryMetadataRepository:
    """Dict-backed repository used for tests and local prototyping."""

    def __init__(
        self,
        documents: Iterable[DocumentSnapshot] = (),
        datasources: Iterable[DataSourceSnapshot] = (),
    ) -> None:
        self._documents = {doc.id: doc for doc in documents}
        self._datasources = {ds.id: ds for ds in datasources}
        self.available = True
        self.lookups: list[tuple[str, tuple[str, ...]]] = []

    def add_document(self, document: DocumentSnapshot) -> None:
        self._documents[document.id] = document

    def add_datasource(self, datasource: DataSourceSnapshot) -> None:
        self._datasources[datasource.id] = datasource

    async def find_documents(self, ids: list[str]) -> list[DocumentSnapshot]:
        self._check_available()
        self.lookups.append(("documents", tuple(ids)))
        return [self._documents[i] for i in ids if i in self._documents]

    async def find_datasources(self, ids: list[str]) -> list[DataSourceSnapshot]:
        self._check_available()
        self.lookups.append(("datasources", tuple(ids)))
        return [self._datasources[i] for i in ids if i in self._datasources]

    def _check_available(self) -> None:
        if not self.available:
            raise MetadataUnavailable("metadata repository is unavailable")
