"""Options, preconditions and read-consistency settings."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timezone

from .errors import DatabaseError

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_timestamp(value: datetime) -> dict[str, int]:
    """Convert a datetime to a protobuf ``Timestamp`` (seconds and nanos).

    Naive datetimes are taken to be in UTC. ``nanos`` is always non-negative.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    delta = value - _EPOCH
    return {
        "seconds": delta.days * 86400 + delta.seconds,
        "nanos": delta.microseconds * 1000,
    }


@dataclass(frozen=True)
class FirestoreDbOptions:
    """Settings for a database client."""

    google_project_id: str
    max_retries: int = 3
    firebase_api_url: str | None = None


@dataclass(frozen=True)
class WritePrecondition:
    """A precondition on a document for conditional writes.

    Exactly one of ``exists`` or ``update_time`` must be given. ``exists=True``
    requires the document to exist, ``exists=False`` requires it to be absent;
    ``update_time`` requires it to exist and to have been last updated then.
    """

    exists: bool | None = None
    update_time: datetime | None = None

    def __post_init__(self) -> None:
        if (self.exists is None) == (self.update_time is None):
            raise ValueError("exactly one of exists or update_time must be set")

    def to_proto(self) -> dict:
        if self.exists is not None:
            return {"exists": self.exists}
        return {"update_time": to_timestamp(self.update_time)}


class RequestKind(enum.Enum):
    """The kinds of request that can carry a consistency selector."""

    GET_DOCUMENT = "get_document"
    BATCH_GET_DOCUMENTS = "batch_get_documents"
    LIST_DOCUMENTS = "list_documents"
    RUN_QUERY = "run_query"
    PARTITION_QUERY = "partition_query"
    RUN_AGGREGATION_QUERY = "run_aggregation_query"
    TRANSACTION_READ_ONLY = "transaction_read_only"
    LIST_COLLECTION_IDS = "list_collection_ids"

    @property
    def supports_transaction(self) -> bool:
        return self not in _NO_TRANSACTION_KINDS


_NO_TRANSACTION_KINDS = frozenset(
    {
        RequestKind.PARTITION_QUERY,
        RequestKind.TRANSACTION_READ_ONLY,
        RequestKind.LIST_COLLECTION_IDS,
    }
)

_UNSUPPORTED_SELECTOR = "Unsupported consistency selector"


@dataclass(frozen=True)
class ConsistencySelector:
    """Read documents within a transaction or as of a point in time.

    Exactly one of ``transaction`` (a transaction ID) or ``read_time`` must be given.
    """

    transaction: bytes | None = None
    read_time: datetime | None = None

    def __post_init__(self) -> None:
        if (self.transaction is None) == (self.read_time is None):
            raise ValueError("exactly one of transaction or read_time must be set")

    def to_proto(self, request_kind: RequestKind) -> dict:
        """Render the selector for a request of the given kind.

        Raises DatabaseError where the request kind cannot be read in a transaction.
        """
        if self.transaction is not None:
            if not request_kind.supports_transaction:
                raise DatabaseError(_UNSUPPORTED_SELECTOR, _UNSUPPORTED_SELECTOR, False)
            return {"transaction": self.transaction}
        return {"read_time": to_timestamp(self.read_time)}


@dataclass(frozen=True)
class SessionParams:
    """Per-session settings carried by a client handle."""

    consistency_selector: ConsistencySelector | None = None