"""Abstract base class for vector-store backends.

Adding a new backend only requires subclassing :class:`VectorStoreBase`
and implementing the abstract methods.  The retriever and the pipeline
orchestrator are backend-agnostic.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path

from docchat.retrieval.models import SearchHit, TextChunk, VectorStoreEntry


class VectorStoreBase(ABC):
    """Backend-agnostic vector-store interface.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / index / namespace.
    """

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def add_entries(self, chunks: Iterable[TextChunk]) -> int:
        """Insert or overwrite one entry per embedded chunk.

        Chunks without an embedding are skipped.  Returns the number of
        entries written.
        """
        ...

    @abstractmethod
    def search(
        self,
        query_embedding: list[float],
        *,
        limit: int = 5,
        document_id: str | None = None,
        similarity_threshold: float = 0.5,
    ) -> list[SearchHit]:
        """Return at most *limit* entries ranked by descending similarity.

        Parameters
        ----------
        query_embedding:
            Dense vector for the query.
        limit:
            Maximum number of hits.
        document_id:
            Restrict the search to entries of one document.
        similarity_threshold:
            Entries scoring strictly below this value are discarded.
        """
        ...

    @abstractmethod
    def get_by_document_id(self, document_id: str) -> list[VectorStoreEntry]: ...

    @abstractmethod
    def delete_by_document_id(self, document_id: str) -> int:
        """Remove every entry of *document_id* and return how many were removed."""
        ...

    @abstractmethod
    def get_all(self) -> list[VectorStoreEntry]: ...

    @abstractmethod
    def clear(self) -> None: ...

    @abstractmethod
    def count(self) -> int: ...

    @abstractmethod
    def export(self) -> str:
        """Serialise the full entry set to a JSON string."""
        ...

    @abstractmethod
    def import_(self, payload: str) -> None:
        """Replace the store contents with a payload produced by :meth:`export`."""
        ...

    # -- optional overrides ---------------------------------------------------

    def save(self, path: str | Path) -> None:
        """Write :meth:`export` output to *path*."""
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.export(), encoding="utf-8")

    def load(self, path: str | Path) -> None:
        """Replace the store contents with the snapshot stored at *path*."""
        self.import_(Path(path).read_text(encoding="utf-8"))
