"""Aggregated queries such as counting the documents a query matches."""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterable, AsyncIterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from .errors import DatabaseError, FirestoreError
from .models import FirestoreDbOptions, RequestKind, SessionParams

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AggregationOperatorCount:
    """Count matching documents, optionally stopping at ``up_to``."""

    up_to: int | None = None


@dataclass(frozen=True)
class Aggregation:
    """One aggregation of a query, reported under ``alias``."""

    alias: str
    operator: AggregationOperatorCount | None = None

    def to_proto(self) -> dict:
        """Render as a structured aggregation request entry."""
        operator = (
            None
            if self.operator is None
            else {"count": {"up_to": self.operator.up_to}}
        )
        return {"alias": self.alias, "operator": operator}


@dataclass(frozen=True)
class AggregatedQueryParams:
    """A query over a collection together with the aggregations to compute.

    ``structured_query`` is sent as is; when omitted, the query selects every
    document of ``collection_id``.
    """

    collection_id: str
    aggregations: Sequence[Aggregation] = ()
    parent: str | None = None
    structured_query: Mapping[str, Any] | None = None

    def query_proto(self) -> dict:
        if self.structured_query is not None:
            return dict(self.structured_query)
        return {"from": [{"collection_id": self.collection_id, "all_descendants": False}]}


def aggregated_response_to_doc(response: Mapping[str, Any]) -> dict | None:
    """Turn an aggregation response into a document, or None if it has no result."""
    result = response.get("result")
    if result is None:
        return None
    return {
        "name": "",
        "fields": dict(result.get("aggregate_fields") or {}),
        "create_time": None,
        "update_time": None,
    }


class AggregatedQueryMixin:
    """Aggregated queries for a database client.

    The host class provides ``documents_path``, ``options``, ``session_params``
    and a ``transport`` whose coroutine ``run_aggregation_query(request)``
    returns an async iterable of responses, each possibly holding a ``"result"``
    with ``"aggregate_fields"``.
    """

    documents_path: str
    options: FirestoreDbOptions
    session_params: SessionParams
    transport: Any

    def _aggregated_query_request(self, params: AggregatedQueryParams) -> dict:
        selector = self.session_params.consistency_selector
        return {
            "parent": str(params.parent) if params.parent is not None else self.documents_path,
            "consistency_selector": (
                None
                if selector is None
                else selector.to_proto(RequestKind.RUN_AGGREGATION_QUERY)
            ),
            "structured_aggregation_query": {
                "aggregations": [agg.to_proto() for agg in params.aggregations],
                "structured_query": params.query_proto(),
            },
        }

    async def _run_aggregation_with_retries(
        self, params: AggregatedQueryParams
    ) -> AsyncIterable[Mapping[str, Any]]:
        attempt = 0
        while True:
            request = self._aggregated_query_request(params)
            started = time.monotonic()
            try:
                responses = await self.transport.run_aggregation_query(request)
            except DatabaseError as err:
                if err.retry_possible and attempt < self.options.max_retries:
                    attempt += 1
                    logger.warning(
                        "[DB]: Failed with %s. Retrying: %d/%d",
                        err,
                        attempt,
                        self.options.max_retries,
                    )
                    continue
                raise
            logger.debug(
                "[DB]: Querying documents in %r took %dms",
                params.collection_id,
                int((time.monotonic() - started) * 1000),
            )
            return responses

    async def aggregated_query_doc(self, params: AggregatedQueryParams) -> list[dict]:
        """Run the aggregation and collect the result documents."""
        responses = await self._run_aggregation_with_retries(params)
        documents = []
        async for response in responses:
            document = aggregated_response_to_doc(response)
            if document is not None:
                documents.append(document)
        return documents

    async def stream_aggregated_query_doc_with_errors(
        self, params: AggregatedQueryParams
    ) -> AsyncIterator[dict]:
        """Stream result documents; errors are raised while iterating."""
        responses = await self._run_aggregation_with_retries(params)

        async def documents() -> AsyncIterator[dict]:
            try:
                async for response in responses:
                    document = aggregated_response_to_doc(response)
                    if document is not None:
                        yield document
            except FirestoreError as err:
                logger.error("[DB] Error occurred while consuming query: %s", err)
                raise

        return documents()

    async def stream_aggregated_query_doc(
        self, params: AggregatedQueryParams
    ) -> AsyncIterator[dict]:
        """Stream result documents, logging and stopping on errors."""
        stream = await self.stream_aggregated_query_doc_with_errors(params)

        async def documents() -> AsyncIterator[dict]:
            try:
                async for document in stream:
                    yield document
            except FirestoreError:
                pass

        return documents()