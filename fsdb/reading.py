"""Reading documents by ID, one at a time or in batches."""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Iterable
from typing import Any

from .errors import DatabaseError, DataNotFoundError, FirestoreError
from .models import FirestoreDbOptions, RequestKind, SessionParams
from .paths import safe_document_path

logger = logging.getLogger(__name__)

DocPair = tuple[str, "dict | None"]


def _mask(return_only_fields: Iterable[str] | None) -> dict | None:
    if return_only_fields is None:
        return None
    return {"field_paths": [str(field) for field in return_only_fields]}


def _last_segment(name: str) -> str:
    return name.rsplit("/", 1)[-1]


class GetByIdMixin:
    """Document lookups by ID for a database client.

    The host class provides ``documents_path``, ``database_path``, ``options``,
    ``session_params`` and a ``transport`` with two coroutines:
    ``get_document(request)`` returning a document dict, and
    ``batch_get_documents(request)`` returning an async iterable of responses,
    each holding either ``"found"`` (a document) or ``"missing"`` (a path).
    """

    documents_path: str
    database_path: str
    options: FirestoreDbOptions
    session_params: SessionParams
    transport: Any

    def _selector_for(self, kind: RequestKind) -> dict | None:
        selector = self.session_params.consistency_selector
        return None if selector is None else selector.to_proto(kind)

    async def get_doc(
        self,
        collection_id: str,
        document_id: str,
        return_only_fields: Iterable[str] | None = None,
    ) -> dict:
        """Read one document of a top-level collection."""
        return await self.get_doc_at(
            self.documents_path, collection_id, document_id, return_only_fields
        )

    async def get_doc_at(
        self,
        parent: str,
        collection_id: str,
        document_id: str,
        return_only_fields: Iterable[str] | None = None,
    ) -> dict:
        """Read one document of a collection below ``parent``."""
        document_path = safe_document_path(str(parent), collection_id, document_id)
        return await self.get_doc_by_path(document_path, return_only_fields, 0)

    async def get_doc_if_exists(
        self,
        collection_id: str,
        document_id: str,
        return_only_fields: Iterable[str] | None = None,
    ) -> dict | None:
        """Read one document, or return None when it does not exist."""
        return await self.get_doc_at_if_exists(
            self.documents_path, collection_id, document_id, return_only_fields
        )

    async def get_doc_at_if_exists(
        self,
        parent: str,
        collection_id: str,
        document_id: str,
        return_only_fields: Iterable[str] | None = None,
    ) -> dict | None:
        """Read one document below ``parent``, or return None when it does not exist."""
        try:
            return await self.get_doc_at(
                parent, collection_id, document_id, return_only_fields
            )
        except DataNotFoundError:
            return None

    async def get_doc_by_path(
        self,
        document_path: str,
        return_only_fields: Iterable[str] | None = None,
        retries: int = 0,
    ) -> dict:
        """Read a document by its full path, retrying retryable failures.

        Retries drop the field mask, as the first attempt's fields are not resent.
        """
        attempt = retries
        fields = return_only_fields
        while True:
            request = {
                "name": document_path,
                "consistency_selector": self._selector_for(RequestKind.GET_DOCUMENT),
                "mask": _mask(fields),
            }
            started = time.monotonic()
            try:
                document = await self.transport.get_document(request)
            except DatabaseError as err:
                if err.retry_possible and attempt < self.options.max_retries:
                    attempt += 1
                    logger.warning(
                        "[DB]: Failed with %s. Retrying: %d/%d",
                        err,
                        attempt,
                        self.options.max_retries,
                    )
                    fields = None
                    continue
                raise
            logger.debug(
                "[DB]: Reading document %s took %dms",
                document_path,
                int((time.monotonic() - started) * 1000),
            )
            return document

    async def batch_stream_get_docs(
        self,
        collection_id: str,
        document_ids: Iterable[str],
        return_only_fields: Iterable[str] | None = None,
    ) -> AsyncIterator[DocPair]:
        """Stream ``(id, document or None)`` pairs, logging and stopping on errors."""
        return await self.batch_stream_get_docs_at(
            self.documents_path, collection_id, document_ids, return_only_fields
        )

    async def batch_stream_get_docs_with_errors(
        self,
        collection_id: str,
        document_ids: Iterable[str],
        return_only_fields: Iterable[str] | None = None,
    ) -> AsyncIterator[DocPair]:
        """Stream ``(id, document or None)`` pairs; errors are raised while iterating."""
        return await self.batch_stream_get_docs_at_with_errors(
            self.documents_path, collection_id, document_ids, return_only_fields
        )

    async def batch_stream_get_docs_at(
        self,
        parent: str,
        collection_id: str,
        document_ids: Iterable[str],
        return_only_fields: Iterable[str] | None = None,
    ) -> AsyncIterator[DocPair]:
        """Like ``batch_stream_get_docs`` for a collection below ``parent``."""
        stream = await self.batch_stream_get_docs_at_with_errors(
            parent, collection_id, document_ids, return_only_fields
        )

        async def swallow_errors() -> AsyncIterator[DocPair]:
            try:
                async for pair in stream:
                    yield pair
            except FirestoreError as err:
                logger.error(
                    "[DB] Error occurred while consuming batch get as a stream: %s", err
                )

        return swallow_errors()

    async def batch_stream_get_docs_at_with_errors(
        self,
        parent: str,
        collection_id: str,
        document_ids: Iterable[str],
        return_only_fields: Iterable[str] | None = None,
    ) -> AsyncIterator[DocPair]:
        """Like ``batch_stream_get_docs_with_errors`` for a collection below ``parent``.

        Invalid IDs and request failures are raised before a stream is returned.
        """
        full_doc_ids = [
            safe_document_path(str(parent), collection_id, document_id)
            for document_id in document_ids
        ]
        request = {
            "database": self.database_path,
            "documents": full_doc_ids,
            "consistency_selector": self._selector_for(
                RequestKind.BATCH_GET_DOCUMENTS
            ),
            "mask": _mask(return_only_fields),
        }
        responses = await self.transport.batch_get_documents(request)
        logger.debug(
            "Start consuming a batch of %d documents by ids in %s",
            len(full_doc_ids),
            collection_id,
        )

        async def pairs() -> AsyncIterator[DocPair]:
            async for response in responses:
                found = response.get("found")
                if found is not None:
                    yield _last_segment(found.get("name", "")), found
                    continue
                missing = response.get("missing")
                if missing is not None:
                    yield _last_segment(missing), None

        return pairs()