"""Collecting writes into batches and sending them in one request."""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Protocol

from .errors import DatabaseError, InvalidParametersError
from .models import WritePrecondition
from .paths import safe_document_path

logger = logging.getLogger(__name__)

_BACKOFF_MULTIPLIER = 1.5
_BACKOFF_RANDOMIZATION = 0.5


class BatchWriter(Protocol):
    """Something that can send a list of writes."""

    async def write(self, writes: list[dict]) -> Any: ...


@dataclass(frozen=True)
class BatchWriteResponse:
    """The outcome of one batch write."""

    position: int
    write_results: list = field(default_factory=list)
    statuses: list = field(default_factory=list)
    commit_time: datetime | None = None


@dataclass
class Batch:
    """Writes collected to be sent together by ``writer``."""

    db: Any
    writer: BatchWriter
    writes: list[dict] = field(default_factory=list)

    def add(self, write: Mapping[str, Any]) -> Batch:
        """Append a write; returns the batch for chaining."""
        self.writes.append(dict(write))
        return self

    def delete_by_id(
        self,
        collection_id: str,
        document_id: str,
        precondition: WritePrecondition | None = None,
    ) -> Batch:
        """Add a deletion of a document of a top-level collection."""
        return self.delete_by_id_at(
            self.db.documents_path, collection_id, document_id, precondition
        )

    def delete_by_id_at(
        self,
        parent: str,
        collection_id: str,
        document_id: str,
        precondition: WritePrecondition | None = None,
    ) -> Batch:
        """Add a deletion of a document of a collection below ``parent``."""
        return self.add(
            {
                "delete": safe_document_path(str(parent), collection_id, document_id),
                "current_document": (
                    None if precondition is None else precondition.to_proto()
                ),
            }
        )

    async def write(self) -> Any:
        """Send the collected writes through the writer."""
        return await self.writer.write(list(self.writes))


@dataclass(frozen=True)
class SimpleBatchWriteOptions:
    """Retry settings for a simple batch writer.

    Retryable failures are retried with exponential backoff; with no
    ``retry_max_elapsed_time`` they are retried without limit.
    """

    retry_max_elapsed_time: timedelta | None = None
    initial_retry_interval: timedelta = timedelta(milliseconds=500)
    max_retry_interval: timedelta = timedelta(seconds=60)


class SimpleBatchWriter:
    """Sends each batch as a single batch-write request."""

    def __init__(self, db: Any, options: SimpleBatchWriteOptions | None = None) -> None:
        self.db = db
        self.options = options if options is not None else SimpleBatchWriteOptions()

    def new_batch(self) -> Batch:
        """Start an empty batch bound to this writer."""
        return Batch(self.db, self)

    def _max_elapsed_seconds(self) -> float | None:
        limit = self.options.retry_max_elapsed_time
        if limit is None:
            return None
        if limit < timedelta(0):
            raise InvalidParametersError(
                "retry_max_elapsed_time", f"Negative duration: {limit}"
            )
        return limit.total_seconds()

    async def write(self, writes: Sequence[Mapping[str, Any]]) -> BatchWriteResponse:
        """Send ``writes`` in one request, retrying retryable failures."""
        max_elapsed = self._max_elapsed_seconds()
        writes_list = [dict(w) for w in writes]
        interval = self.options.initial_retry_interval.total_seconds()
        max_interval = self.options.max_retry_interval.total_seconds()
        started = time.monotonic()
        while True:
            request = {
                "database": self.db.database_path,
                "writes": list(writes_list),
                "labels": {},
            }
            try:
                response = await self.db.transport.batch_write(request)
            except DatabaseError as err:
                if not err.retry_possible:
                    raise
                delay = interval * random.uniform(
                    1 - _BACKOFF_RANDOMIZATION, 1 + _BACKOFF_RANDOMIZATION
                )
                if (
                    max_elapsed is not None
                    and time.monotonic() - started + delay > max_elapsed
                ):
                    raise
                logger.warning("[DB]: Batch write failed with %s. Retrying", err)
                await asyncio.sleep(delay)
                interval = min(interval * _BACKOFF_MULTIPLIER, max_interval)
                continue
            logger.debug("[DB]: Batch of %d writes sent", len(writes_list))
            return BatchWriteResponse(
                position=0,
                write_results=list(response.get("write_results") or []),
                statuses=list(response.get("status") or []),
            )