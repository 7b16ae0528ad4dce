"""Building and validating document paths."""

from __future__ import annotations

from dataclasses import dataclass

from .errors import InvalidParametersError

_MAX_DOCUMENT_ID_BYTES = 1500


def safe_document_path(parent: str, collection_id: str, document_id: str) -> str:
    """Join a document path, rejecting IDs that could inject extra path segments.

    Only the most dangerous restrictions are checked here (no ``/`` and at most
    1500 bytes); everything else is left to the server.
    """
    if "/" not in document_id and len(document_id.encode("utf-8")) <= _MAX_DOCUMENT_ID_BYTES:
        return f"{parent}/{collection_id}/{document_id}"
    raise InvalidParametersError(
        "document_id", f"Invalid document ID provided: {document_id}"
    )


def ensure_url_scheme(url: str) -> str:
    """Prefix ``http://`` to a URL that has no scheme."""
    return url if "://" in url else f"http://{url}"


@dataclass(frozen=True)
class ParentPathBuilder:
    """A document path used as the parent of a nested collection."""

    value: str

    def at(self, parent_collection_name: str, parent_document_id: str) -> ParentPathBuilder:
        """Descend into a document of a sub-collection below this path."""
        return ParentPathBuilder(
            safe_document_path(self.value, parent_collection_name, parent_document_id)
        )

    def __str__(self) -> str:
        return self.value