from __future__ import annotations

from datetime import datetime, timezone

import pytest

from fsdb.errors import DatabaseError, DataNotFoundError, InvalidParametersError
from fsdb.models import ConsistencySelector, FirestoreDbOptions, RequestKind, SessionParams
from fsdb.reading import GetByIdMixin

DB_PATH = "projects/test-project/databases/(default)"
DOCS_PATH = f"{DB_PATH}/documents"


class FakeTransport:
    def __init__(self, get_results=(), batch_items=(), batch_call_error=None):
        self.get_results = list(get_results)
        self.batch_items = list(batch_items)
        self.batch_call_error = batch_call_error
        self.requests = []

    async def get_document(self, request):
        self.requests.append(request)
        result = self.get_results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    async def batch_get_documents(self, request):
        self.requests.append(request)
        if self.batch_call_error is not None:
            raise self.batch_call_error
        return self._stream()

    async def _stream(self):
        for item in self.batch_items:
            if isinstance(item, Exception):
                raise item
            yield item


class Host(GetByIdMixin):
    def __init__(self, transport, options, session_params):
        self.transport = transport
        self.options = options
        self.session_params = session_params
        self.database_path = DB_PATH
        self.documents_path = DOCS_PATH


def make_host(transport, max_retries=3, selector=None):
    options = FirestoreDbOptions("test-project", max_retries=max_retries)
    session_params = SessionParams(selector) if selector is not None else SessionParams()
    return Host(transport, options, session_params)


def retryable():
    return DatabaseError("UNAVAILABLE", "unavailable", True)


async def collect(stream):
    return [item async for item in stream]


@pytest.mark.asyncio
async def test_get_doc_builds_path_and_returns_document():
    doc = {"name": f"{DOCS_PATH}/test/test1", "fields": {}}
    transport = FakeTransport(get_results=[doc])
    result = await make_host(transport).get_doc("test", "test1", ["a", "b"])
    assert result == doc
    request = transport.requests[0]
    assert request["name"] == f"{DOCS_PATH}/test/test1"
    assert request["mask"] == {"field_paths": ["a", "b"]}
    assert request["consistency_selector"] is None


@pytest.mark.asyncio
async def test_get_doc_at_uses_parent():
    parent = f"{DOCS_PATH}/nested-test/test-parent"
    transport = FakeTransport(get_results=[{"name": "x"}])
    result = await make_host(transport).get_doc_at(parent, "test-childs", "test-child")
    assert result == {"name": "x"}
    assert transport.requests[0]["name"] == f"{parent}/test-childs/test-child"
    assert transport.requests[0]["mask"] is None


@pytest.mark.asyncio
async def test_get_doc_rejects_slash_in_id():
    transport = FakeTransport()
    with pytest.raises(InvalidParametersError):
        await make_host(transport).get_doc("test", "test1/test2")
    assert transport.requests == []


@pytest.mark.asyncio
async def test_retries_then_succeeds_and_drops_mask():
    doc = {"name": "done"}
    transport = FakeTransport(get_results=[retryable(), retryable(), doc])
    result = await make_host(transport).get_doc("test", "test1", ["a"])
    assert result == doc
    assert len(transport.requests) == 3
    assert transport.requests[0]["mask"] == {"field_paths": ["a"]}
    assert transport.requests[1]["mask"] is None


@pytest.mark.asyncio
async def test_retries_exhausted_raises():
    transport = FakeTransport(get_results=[retryable(), retryable(), retryable()])
    with pytest.raises(DatabaseError):
        await make_host(transport, max_retries=1).get_doc("test", "test1")
    assert len(transport.requests) == 2


@pytest.mark.asyncio
async def test_non_retryable_error_raised_at_once():
    error = DatabaseError("INTERNAL", "broken", False)
    transport = FakeTransport(get_results=[error, {"name": "never"}])
    with pytest.raises(DatabaseError) as info:
        await make_host(transport).get_doc("test", "test1")
    assert info.value is error
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_get_doc_if_exists_returns_none_when_missing():
    transport = FakeTransport(get_results=[DataNotFoundError("missing")])
    assert await make_host(transport).get_doc_if_exists("test", "test1") is None


@pytest.mark.asyncio
async def test_get_doc_if_exists_returns_document():
    doc = {"name": f"{DOCS_PATH}/test/test1"}
    transport = FakeTransport(get_results=[doc])
    assert await make_host(transport).get_doc_if_exists("test", "test1") == doc


@pytest.mark.asyncio
async def test_get_doc_at_if_exists_propagates_other_errors():
    error = DatabaseError("INTERNAL", "x", False)
    transport = FakeTransport(get_results=[error])
    with pytest.raises(DatabaseError) as info:
        await make_host(transport).get_doc_at_if_exists(DOCS_PATH, "test", "test1")
    assert info.value is error
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_consistency_selector_is_sent():
    selector = ConsistencySelector(transaction=b"tx-1")
    transport = FakeTransport(get_results=[{"name": "x"}])
    host = make_host(transport, selector=selector)
    result = await host.get_doc("test", "test1")
    assert result == {"name": "x"}
    assert transport.requests[0]["consistency_selector"] == selector.to_proto(
        RequestKind.GET_DOCUMENT
    )


@pytest.mark.asyncio
async def test_batch_maps_found_and_missing():
    items = [
        {"found": {"name": f"{DOCS_PATH}/test/test-0", "fields": {"a": 1}}},
        {},
        {"missing": f"{DOCS_PATH}/test/test-5"},
    ]
    transport = FakeTransport(batch_items=items)
    stream = await make_host(transport).batch_stream_get_docs("test", ["test-0", "test-5"])
    pairs = await collect(stream)
    assert pairs == [
        ("test-0", {"name": f"{DOCS_PATH}/test/test-0", "fields": {"a": 1}}),
        ("test-5", None),
    ]
    request = transport.requests[0]
    assert request["database"] == DB_PATH
    assert request["documents"] == [f"{DOCS_PATH}/test/test-0", f"{DOCS_PATH}/test/test-5"]


@pytest.mark.asyncio
async def test_batch_with_errors_raises_while_iterating():
    items = [{"missing": f"{DOCS_PATH}/test/test-0"}, retryable()]
    transport = FakeTransport(batch_items=items)
    stream = await make_host(transport).batch_stream_get_docs_with_errors("test", ["test-0"])
    seen = []
    with pytest.raises(DatabaseError):
        async for pair in stream:
            seen.append(pair)
    assert seen == [("test-0", None)]


@pytest.mark.asyncio
async def test_batch_without_errors_stops_quietly():
    items = [{"missing": f"{DOCS_PATH}/test/test-0"}, retryable(), {"missing": "z"}]
    transport = FakeTransport(batch_items=items)
    stream = await make_host(transport).batch_stream_get_docs("test", ["test-0"])
    assert await collect(stream) == [("test-0", None)]


@pytest.mark.asyncio
async def test_batch_invalid_id_raises_before_request():
    transport = FakeTransport()
    with pytest.raises(InvalidParametersError):
        await make_host(transport).batch_stream_get_docs("test", ["ok", "bad/id"])
    assert transport.requests == []


@pytest.mark.asyncio
async def test_batch_call_failure_raised_immediately():
    error = DatabaseError("INTERNAL", "x", False)
    transport = FakeTransport(batch_call_error=error)
    with pytest.raises(DatabaseError) as info:
        await make_host(transport).batch_stream_get_docs_at(DOCS_PATH, "test", ["a"])
    assert info.value is error
    assert len(transport.requests) == 1


@pytest.mark.asyncio
async def test_batch_at_with_errors_sends_read_time_and_mask():
    read_time = datetime(2020, 1, 1, tzinfo=timezone.utc)
    selector = ConsistencySelector(read_time=read_time)
    transport = FakeTransport(batch_items=[])
    host = make_host(transport, selector=selector)
    parent = f"{DOCS_PATH}/nested-test/p"
    stream = await host.batch_stream_get_docs_at_with_errors(
        parent, "kids", ["k1"], ["f"]
    )
    assert await collect(stream) == []
    request = transport.requests[0]
    assert request["documents"] == [f"{parent}/kids/k1"]
    assert request["mask"] == {"field_paths": ["f"]}
    assert request["consistency_selector"] == {"read_time": {"seconds": 1577836800, "nanos": 0}}