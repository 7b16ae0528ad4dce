"""Listing documents and collection IDs, page by page or as streams."""

from __future__ import annotations

import enum
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from dataclasses import dataclass, field, replace
from typing import Any, TypeVar

from .errors import DatabaseError, FirestoreError
from .models import FirestoreDbOptions, RequestKind, SessionParams

logger = logging.getLogger(__name__)

_Params = TypeVar("_Params", "ListDocParams", "ListCollectionIdsParams")
_Result = TypeVar("_Result")


class QueryDirection(enum.Enum):
    """Sort direction of an ordered listing."""

    ASCENDING = "asc"
    DESCENDING = "desc"


@dataclass(frozen=True)
class QueryOrder:
    """One field to order results by, with its direction."""

    field_name: str
    direction: QueryDirection = QueryDirection.ASCENDING

    def to_string_format(self) -> str:
        """Render as ``"<field> asc"`` or ``"<field> desc"``."""
        return f"{self.field_name} {self.direction.value}"


@dataclass(frozen=True)
class ListDocParams:
    """What to list from a collection and how."""

    collection_id: str
    parent: str | None = None
    page_size: int = 100
    page_token: str | None = None
    order_by: Sequence[QueryOrder] | None = None
    return_only_fields: Sequence[str] | None = None


@dataclass(frozen=True)
class ListDocResult:
    """One page of listed documents."""

    documents: list[dict] = field(default_factory=list)
    page_token: str | None = None


@dataclass(frozen=True)
class ListCollectionIdsParams:
    """Where to list collection IDs and how."""

    parent: str | None = None
    page_size: int = 100
    page_token: str | None = None


@dataclass(frozen=True)
class ListCollectionIdsResult:
    """One page of collection IDs."""

    collection_ids: list[str] = field(default_factory=list)
    page_token: str | None = None


def _next_token(response: dict) -> str | None:
    token = response.get("next_page_token") or ""
    return token or None


class ListingMixin:
    """Document and collection listings for a database client.

    The host class provides ``documents_path``, ``options``, ``session_params``
    and a ``transport`` with two coroutines: ``list_documents(request)`` returning
    a dict with ``"documents"`` and ``"next_page_token"``, and
    ``list_collection_ids(request)`` returning a dict with ``"collection_ids"``
    and ``"next_page_token"``. An empty token means there are no more pages.
    """

    documents_path: str
    options: FirestoreDbOptions
    session_params: SessionParams
    transport: Any

    def _listing_selector(self, kind: RequestKind) -> dict | None:
        selector = self.session_params.consistency_selector
        return None if selector is None else selector.to_proto(kind)

    def _list_doc_request(self, params: ListDocParams) -> dict:
        order_by = (
            ", ".join(order.to_string_format() for order in params.order_by)
            if params.order_by is not None
            else ""
        )
        mask = (
            {"field_paths": list(params.return_only_fields)}
            if params.return_only_fields is not None
            else None
        )
        return {
            "parent": str(params.parent) if params.parent is not None else self.documents_path,
            "collection_id": params.collection_id,
            "page_size": params.page_size,
            "page_token": params.page_token or "",
            "order_by": order_by,
            "mask": mask,
            "consistency_selector": self._listing_selector(RequestKind.LIST_DOCUMENTS),
            "show_missing": False,
        }

    def _list_collection_ids_request(self, params: ListCollectionIdsParams) -> dict:
        return {
            "parent": str(params.parent) if params.parent is not None else self.documents_path,
            "page_size": params.page_size,
            "page_token": params.page_token or "",
            "consistency_selector": self._listing_selector(
                RequestKind.LIST_COLLECTION_IDS
            ),
        }

    async def _with_retries(
        self, call: Callable[[], Awaitable[_Result]], what: str
    ) -> _Result:
        attempt = 0
        while True:
            started = time.monotonic()
            try:
                result = await call()
            except DatabaseError as err:
                if err.retry_possible and attempt < self.options.max_retries:
                    attempt += 1
                    logger.warning(
                        "[DB]: Listing failed with %s. Retrying: %d/%d",
                        err,
                        attempt,
                        self.options.max_retries,
                    )
                    continue
                raise
            logger.debug(
                "[DB]: Listing %s took %dms",
                what,
                int((time.monotonic() - started) * 1000),
            )
            return result

    async def list_doc(self, params: ListDocParams) -> ListDocResult:
        """Fetch one page of documents."""

        async def call() -> ListDocResult:
            request = self._list_doc_request(params)
            response = await self.transport.list_documents(request)
            return ListDocResult(
                documents=list(response.get("documents") or []),
                page_token=_next_token(response),
            )

        return await self._with_retries(call, f"documents in {params.collection_id!r}")

    async def list_collection_ids(
        self, params: ListCollectionIdsParams
    ) -> ListCollectionIdsResult:
        """Fetch one page of collection IDs."""

        async def call() -> ListCollectionIdsResult:
            request = self._list_collection_ids_request(params)
            response = await self.transport.list_collection_ids(request)
            return ListCollectionIdsResult(
                collection_ids=list(response.get("collection_ids") or []),
                page_token=_next_token(response),
            )

        return await self._with_retries(call, "collections")

    async def stream_list_doc_with_errors(
        self, params: ListDocParams
    ) -> AsyncIterator[dict]:
        """Stream documents over all pages; errors are raised while iterating."""

        async def documents() -> AsyncIterator[dict]:
            current: ListDocParams | None = params
            while current is not None:
                try:
                    result = await self.list_doc(current)
                except FirestoreError as err:
                    logger.error("[DB] Error occurred while consuming documents: %s", err)
                    raise
                for document in result.documents:
                    yield document
                current = (
                    replace(current, page_token=result.page_token)
                    if result.page_token is not None
                    else None
                )

        return documents()

    async def stream_list_doc(self, params: ListDocParams) -> AsyncIterator[dict]:
        """Stream documents over all pages, logging and stopping on errors."""
        stream = await self.stream_list_doc_with_errors(params)

        async def documents() -> AsyncIterator[dict]:
            try:
                async for document in stream:
                    yield document
            except FirestoreError as err:
                logger.error("[DB] Error occurred while consuming documents: %s", err)

        return documents()

    async def stream_list_collection_ids_with_errors(
        self, params: ListCollectionIdsParams
    ) -> AsyncIterator[str]:
        """Stream collection IDs over all pages; errors are raised while iterating."""

        async def collection_ids() -> AsyncIterator[str]:
            current: ListCollectionIdsParams | None = params
            while current is not None:
                try:
                    result = await self.list_collection_ids(current)
                except FirestoreError as err:
                    logger.error(
                        "[DB] Error occurred while consuming collection IDs: %s", err
                    )
                    raise
                for collection_id in result.collection_ids:
                    yield collection_id
                current = (
                    replace(current, page_token=result.page_token)
                    if result.page_token is not None
                    else None
                )

        return collection_ids()

    async def stream_list_collection_ids(
        self, params: ListCollectionIdsParams
    ) -> AsyncIterator[str]:
        """Stream collection IDs over all pages, logging and stopping on errors."""
        stream = await self.stream_list_collection_ids_with_errors(params)

        async def collection_ids() -> AsyncIterator[str]:
            try:
                async for collection_id in stream:
                    yield collection_id
            except FirestoreError as err:
                logger.error(
                    "[DB] Error occurred while consuming collection IDs: %s", err
                )

        return collection_ids()