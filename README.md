# fsdb

An asynchronous client for a Firestore-style document database. It builds and
checks document paths, reads documents by ID, lists documents and collection
IDs, runs aggregated queries, creates and deletes documents, and sends batches
of writes.

fsdb makes no network calls of its own. Every remote call goes through a
transport object that you pass in. Requests and responses are plain dicts.

## Installation

```
pip install fsdb
```

To run the test suite:

```
pip install "fsdb[test]"
pytest
```

## The transport

`fsdb.client.Transport` is a protocol. Your transport must provide these
coroutines:

| method | returns |
|---|---|
| `get_document(request)` | a document dict |
| `batch_get_documents(request)` | an async iterable of dicts, each with `"found"` (a document) or `"missing"` (a document path) |
| `list_documents(request)` | `{"documents": [...], "next_page_token": str}` |
| `list_collection_ids(request)` | `{"collection_ids": [...], "next_page_token": str}` |
| `run_aggregation_query(request)` | an async iterable of dicts, each possibly holding `"result": {"aggregate_fields": {...}}` |
| `create_document(request)` | the created document dict |
| `delete_document(request)` | nothing |
| `batch_write(request)` | `{"write_results": [...], "status": [...]}` |

An empty `next_page_token` means there are no more pages.

Failures must be raised as exceptions from `fsdb.errors`:

- `DatabaseError(code, details, retry_possible)` for service errors. Set
  `retry_possible=True` when another attempt may succeed.
- `DataNotFoundError(details)` when a requested document does not exist.

## The client

```python
from fsdb.client import FirestoreDb
from fsdb.models import FirestoreDbOptions

db = FirestoreDb(FirestoreDbOptions(google_project_id="demo-project"), transport)
```

- `FirestoreDbOptions` holds `google_project_id`, `max_retries` (default 3) and
  an optional `firebase_api_url`.
- `db.database_path` is `projects/<id>/databases/(default)`.
  `db.documents_path` is the database path followed by `/documents`.
- `db.api_url` comes from `resolve_api_url(options, environ)`. It uses
  `options.firebase_api_url` if that is set. Otherwise it uses the
  `FIRESTORE_EMULATOR_HOST` variable, with `http://` added when the value has
  no scheme. When neither is set it returns `None`. fsdb only records this
  value; the transport chooses how to use it.
- `FirestoreDb(...)` also takes an optional `session_params` and an optional
  `environ` mapping, which is used in place of `os.environ`.
- `await db.ping()` reads the database path and ignores any `FirestoreError`.

## Paths

`fsdb.paths.safe_document_path(parent, collection_id, document_id)` returns
`"<parent>/<collection_id>/<document_id>"`. It raises
`InvalidParametersError` if the ID contains `/` or is longer than 1500 bytes
in UTF-8. Every operation that takes a document ID checks the ID this way.

`ensure_url_scheme(url)` adds `http://` to a URL that has no `://`.

For nested collections, call `db.parent_path(collection, doc_id)`. It returns
a `ParentPathBuilder`, and `.at(collection, doc_id)` goes one level deeper.
Pass the builder, or `str()` of it, as the `parent` argument:

```python
parent = db.parent_path("users", "alice").at("projects", "p1")
doc = await db.get_doc_at(parent, "tasks", "t1")
```

## Reading by ID

```python
doc = await db.get_doc("users", "alice")
maybe = await db.get_doc_if_exists("users", "bob")   # None when not found

stream = await db.batch_stream_get_docs("users", ["alice", "bob"])
async for doc_id, doc in stream:                      # doc is None when missing
    ...
```

Each method has an `_at` variant that takes a `parent` first. You can pass
`return_only_fields` to send a field mask. `get_doc_by_path(path,
return_only_fields, retries)` reads a document by its full path. A
`DatabaseError` with `retry_possible` set is retried up to
`options.max_retries` times, and the retries are sent without the field mask.

## Listing

```python
from fsdb.listing import ListDocParams, ListCollectionIdsParams, QueryOrder, QueryDirection

params = ListDocParams(
    collection_id="users",
    page_size=50,
    order_by=[QueryOrder("name", QueryDirection.DESCENDING)],
)
page = await db.list_doc(params)          # ListDocResult(documents, page_token)

async for doc in await db.stream_list_doc(params):
    ...

async for name in await db.stream_list_collection_ids(ListCollectionIdsParams()):
    ...
```

The stream methods follow page tokens until the last page. `page_size`
defaults to 100.

## Aggregated queries

```python
from fsdb.aggregation import AggregatedQueryParams, Aggregation, AggregationOperatorCount

params = AggregatedQueryParams(
    collection_id="users",
    aggregations=[Aggregation("total", AggregationOperatorCount(up_to=1000))],
)
docs = await db.aggregated_query_doc(params)
```

Each result is a document dict with an empty `name`, whose `fields` hold the
aggregate fields. By default the query selects every document of
`collection_id`. You can pass `structured_query` to send your own query dict
instead. `stream_aggregated_query_doc` and
`stream_aggregated_query_doc_with_errors` return the results as streams.

## Streams and errors

The `*_with_errors` streams raise a `FirestoreError` during iteration when a
request fails. The plain streams log the error and then end. Any error that
happens before a stream is returned is raised by the `await`. This covers an
invalid document ID and a failed batch-get request. Listing, reading by ID
and aggregated queries retry a `DatabaseError` with `retry_possible` set, up
to `max_retries` times.

## Consistency and preconditions

`fsdb.models.ConsistencySelector(transaction=...)` or
`ConsistencySelector(read_time=...)` pins reads to a transaction or to a point
in time. `db.clone_with_consistency_selector(selector)` returns a client that
shares the options and the transport, and sends the selector with every read.
Some requests cannot be read in a transaction: partition queries, read-only
transaction options and collection-ID listings. For these, a transaction
selector raises `DatabaseError`.

`WritePrecondition(exists=True)`, `WritePrecondition(exists=False)` or
`WritePrecondition(update_time=...)` makes a delete conditional. Exactly one
field must be given.

## Writing

```python
from fsdb.models import WritePrecondition
from fsdb.batch import SimpleBatchWriteOptions

created = await db.create_doc("users", "alice", {"fields": {}})
await db.create_doc("users", None, {"fields": {}})     # the server picks the ID
await db.delete_by_id("users", "alice", WritePrecondition(exists=True))

writer = await db.create_simple_batch_writer(SimpleBatchWriteOptions())
batch = writer.new_batch()
batch.delete_by_id("users", "carol").add({"update": {"name": "..."}})
response = await batch.write()            # BatchWriteResponse
```

The simple batch writer retries a `DatabaseError` with `retry_possible` set.
It uses randomised exponential backoff that starts at 0.5 s, grows by 1.5
times per attempt and is capped at 60 s. It keeps retrying until
`retry_max_elapsed_time` has passed, or forever when that is `None`.

## What fsdb does not do

- It has no transport of its own. It does no authentication and does not
  connect to any service.
- It does not turn Python objects into documents or documents into objects.
  Documents are dicts in the shape your transport uses.
- It has no structured queries beyond aggregations, no document updates or
  field transforms, no transactions, no streaming batch writer and no
  change listeners. A `Batch` can build deletes itself. Any other write must
  be passed to `Batch.add` as a ready-made dict.
- It has no command-line interface.