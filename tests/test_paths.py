import pytest

from fsdb.errors import FirestoreError, InvalidParametersError
from fsdb.paths import ParentPathBuilder, ensure_url_scheme, safe_document_path

ROOT = "projects/test-project/databases/(default)/documents"


def test_safe_document_path_simple():
    assert (
        safe_document_path(ROOT, "test", "test1")
        == "projects/test-project/databases/(default)/documents/test/test1"
    )


def test_safe_document_path_allows_hash():
    assert (
        safe_document_path(ROOT, "test", "test1#test2")
        == "projects/test-project/databases/(default)/documents/test/test1#test2"
    )


def test_safe_document_path_rejects_slash():
    with pytest.raises(InvalidParametersError) as info:
        safe_document_path(ROOT, "test", "test1/test2")
    assert info.value.field == "document_id"
    assert "test1/test2" in info.value.error


def test_safe_document_path_length_limit():
    ok_id = "a" * 1500
    assert safe_document_path(ROOT, "c", ok_id).endswith("/c/" + ok_id)
    with pytest.raises(InvalidParametersError):
        safe_document_path(ROOT, "c", "a" * 1501)


def test_safe_document_path_length_counts_bytes():
    # Two bytes per character in UTF-8.
    with pytest.raises(FirestoreError):
        safe_document_path(ROOT, "c", "\u00e9" * 751)
    assert safe_document_path(ROOT, "c", "\u00e9" * 750).startswith(ROOT)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("localhost:8080", "http://localhost:8080"),
        ("any://localhost:8080", "any://localhost:8080"),
        ("invalid:localhost:8080", "http://invalid:localhost:8080"),
    ],
)
def test_ensure_url_scheme(url, expected):
    assert ensure_url_scheme(url) == expected


def test_parent_path_builder_str():
    builder = ParentPathBuilder(f"{ROOT}/parents/p1")
    assert str(builder) == f"{ROOT}/parents/p1"


def test_parent_path_builder_at_chains():
    builder = ParentPathBuilder(f"{ROOT}/parents/p1").at("children", "c1").at("leaves", "l1")
    assert str(builder) == f"{ROOT}/parents/p1/children/c1/leaves/l1"


def test_parent_path_builder_at_does_not_mutate():
    base = ParentPathBuilder(f"{ROOT}/parents/p1")
    child = base.at("children", "c1")
    assert str(base) == f"{ROOT}/parents/p1"
    assert child == ParentPathBuilder(f"{ROOT}/parents/p1/children/c1")


def test_parent_path_builder_at_rejects_bad_id():
    with pytest.raises(InvalidParametersError):
        ParentPathBuilder(ROOT).at("children", "x/y")