"""The database client: connection settings, session handling and write operations."""

from __future__ import annotations

import copy
import logging
import os
import time
from collections.abc import AsyncIterable, Iterable, Mapping
from dataclasses import replace
from typing import Any, Protocol

from .aggregation import AggregatedQueryMixin
from .batch import SimpleBatchWriteOptions, SimpleBatchWriter
from .errors import FirestoreError
from .listing import ListingMixin
from .models import ConsistencySelector, FirestoreDbOptions, SessionParams, WritePrecondition
from .paths import ParentPathBuilder, ensure_url_scheme, safe_document_path
from .reading import GetByIdMixin

logger = logging.getLogger(__name__)

EMULATOR_HOST_ENV = "FIRESTORE_EMULATOR_HOST"


class Transport(Protocol):
    """The remote calls a client needs; each request and response is a plain dict.

    Failures are raised as ``FirestoreError`` subclasses, with
    ``DatabaseError.retry_possible`` set where a retry may succeed.
    """

    async def get_document(self, request: dict) -> dict: ...

    async def batch_get_documents(self, request: dict) -> AsyncIterable[dict]: ...

    async def list_documents(self, request: dict) -> dict: ...

    async def list_collection_ids(self, request: dict) -> dict: ...

    async def run_aggregation_query(self, request: dict) -> AsyncIterable[dict]: ...

    async def create_document(self, request: dict) -> dict: ...

    async def delete_document(self, request: dict) -> None: ...

    async def batch_write(self, request: dict) -> dict: ...


def resolve_api_url(
    options: FirestoreDbOptions, environ: Mapping[str, str] | None = None
) -> str | None:
    """Pick the API endpoint: the configured one, else the emulator host.

    Returns None when neither is set, leaving the transport to use its default
    endpoint.
    """
    if options.firebase_api_url is not None:
        return options.firebase_api_url
    env = os.environ if environ is None else environ
    emulator_host = env.get(EMULATOR_HOST_ENV)
    if emulator_host is not None:
        return ensure_url_scheme(emulator_host)
    return None


def _mask(return_only_fields: Iterable[str] | None) -> dict | None:
    if return_only_fields is None:
        return None
    return {"field_paths": [str(f) for f in return_only_fields]}


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class FirestoreDb(GetByIdMixin, ListingMixin, AggregatedQueryMixin):
    """A handle on one project's database.

    Handles made by the ``clone_with_*`` methods share the options and the
    transport and differ only in their session parameters.
    """

    def __init__(
        self,
        options: FirestoreDbOptions,
        transport: Transport,
        session_params: SessionParams | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self.options = options
        self.transport = transport
        self.session_params = session_params if session_params is not None else SessionParams()
        self.database_path = f"projects/{options.google_project_id}/databases/(default)"
        self.documents_path = f"{self.database_path}/documents"
        self.api_url = resolve_api_url(options, environ)
        logger.info(
            "Creating a new DB client: %s. API: %s",
            self.database_path,
            self.api_url if self.api_url is not None else "<transport default>",
        )

    def __repr__(self) -> str:
        return (
            f"FirestoreDb(options={self.options!r}, database_path={self.database_path!r}, "
            f"doc_path={self.documents_path!r}, session_params={self.session_params!r})"
        )

    def parent_path(
        self, parent_collection_name: str, parent_document_id: str
    ) -> ParentPathBuilder:
        """Path of a document to use as the parent of a nested collection."""
        return ParentPathBuilder(
            safe_document_path(
                self.documents_path, parent_collection_name, parent_document_id
            )
        )

    def clone_with_session_params(self, session_params: SessionParams) -> FirestoreDb:
        """A handle sharing this one's connection, with other session parameters."""
        clone = copy.copy(self)
        clone.session_params = session_params
        return clone

    def clone_with_consistency_selector(
        self, consistency_selector: ConsistencySelector
    ) -> FirestoreDb:
        """A handle that reads with the given consistency selector."""
        return self.clone_with_session_params(
            replace(self.session_params, consistency_selector=consistency_selector)
        )

    async def ping(self) -> None:
        """Check the database answers by reading a path that holds no document.

        Any error from the read itself is ignored.
        """
        try:
            await self.get_doc_by_path(self.database_path, None, 0)
        except FirestoreError:
            pass

    async def create_doc(
        self,
        collection_id: str,
        document_id: str | None,
        input_doc: Mapping[str, Any],
        return_only_fields: Iterable[str] | None = None,
    ) -> dict:
        """Create a document in a top-level collection; the server picks the ID if None."""
        return await self.create_doc_at(
            self.documents_path, collection_id, document_id, input_doc, return_only_fields
        )

    async def create_doc_at(
        self,
        parent: str,
        collection_id: str,
        document_id: str | None,
        input_doc: Mapping[str, Any],
        return_only_fields: Iterable[str] | None = None,
    ) -> dict:
        """Create a document in a collection below ``parent`` and return it."""
        request = {
            "parent": str(parent),
            "document_id": document_id if document_id is not None else "",
            "mask": _mask(return_only_fields),
            "collection_id": collection_id,
            "document": dict(input_doc),
        }
        started = time.monotonic()
        created = await self.transport.create_document(request)
        logger.debug(
            "[DB]: Created a new document: %s/%r in %dms",
            collection_id,
            document_id,
            _elapsed_ms(started),
        )
        return created

    async def delete_by_id(
        self,
        collection_id: str,
        document_id: str,
        precondition: WritePrecondition | None = None,
    ) -> None:
        """Delete a document of a top-level collection."""
        await self.delete_by_id_at(
            self.documents_path, collection_id, document_id, precondition
        )

    async def delete_by_id_at(
        self,
        parent: str,
        collection_id: str,
        document_id: str,
        precondition: WritePrecondition | None = None,
    ) -> None:
        """Delete a document of a collection below ``parent``."""
        document_path = safe_document_path(str(parent), collection_id, document_id)
        request = {
            "name": document_path,
            "current_document": None if precondition is None else precondition.to_proto(),
        }
        started = time.monotonic()
        await self.transport.delete_document(request)
        logger.debug(
            "[DB]: Deleted a document: %s/%s in %dms",
            collection_id,
            document_id,
            _elapsed_ms(started),
        )

    async def create_simple_batch_writer(
        self, options: SimpleBatchWriteOptions | None = None
    ) -> SimpleBatchWriter:
        """A writer that sends each batch as one request."""
        return SimpleBatchWriter(
            self, options if options is not None else SimpleBatchWriteOptions()
        )