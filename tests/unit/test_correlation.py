"""
Unit tests for the correlation store.

Key SDET Concepts Demonstrated:
- Parametrised path extraction across nesting and indexing styles
- Negative paths: missing keys, out-of-range indexes, non-JSON bodies
- Run isolation via ``clear()``
"""

import pytest

from perfkit.errors import CorrelationMissing
from tests.helpers import FakeResponse


pytestmark = pytest.mark.unit


NESTED = FakeResponse(200, {"a": {"b": [{"c": 42}]}, "data": {"user": {"id": 7, "email": None}}})


@pytest.mark.parametrize(
    "path,expected",
    [
        ("a.b[0].c", 42),
        ("a.b.0.c", 42),
        ("data.user.id", 7),
        ("a.b[0]", {"c": 42}),
    ],
)
def test_extract_resolves_paths(store, path, expected):
    assert store.extract(NESTED, path, "value") == expected
    assert store.get("value") == expected


def test_extract_out_of_range_index_returns_default_and_logs(store, caplog):
    value = store.extract(NESTED, "a.b[5].c", "missing")

    assert value is None
    assert "Failed to extract 'missing' from path 'a.b[5].c'" in caplog.text
    assert "Response status: 200" in caplog.text


def test_extract_uses_configured_default(store):
    value = store.extract(NESTED, "a.b[5].c", "fallback", required=False, default="n/a")

    assert value == "n/a"
    assert store.get("fallback") == "n/a"


def test_extract_required_miss_stores_none(store):
    store.extract(NESTED, "nope", "objectId")

    assert not store.exists("objectId")
    assert store.stats()["correlation_keys"] == ["objectId"]


def test_optional_miss_logs_warning(store, caplog):
    store.extract(NESTED, "data.user.email", "email", required=False)

    assert any(
        record.levelname == "WARNING" and "(optional)" in record.getMessage()
        for record in caplog.records
    )


def test_extract_from_non_json_body(store):
    response = FakeResponse(502, "<html>Bad Gateway</html>")

    assert store.extract(response, "id", "objectId") is None


def test_extract_from_missing_response(store):
    assert store.extract(None, "id", "objectId") is None


def test_extract_malformed_path_is_logged(store, caplog):
    assert store.extract(NESTED, "a.b[0", "broken") is None
    assert "Error extracting 'a.b[0'" in caplog.text


def test_get_and_exists(store):
    store.store("userId", 0)

    assert store.exists("userId")
    assert store.get("userId") == 0
    assert store.get("other", "fallback") == "fallback"
    assert "userId" in store


def test_clear_discards_everything(store):
    store.store("userId", 1)
    store.extract(NESTED, "data.user.id", "profileId")

    store.clear()

    assert store.get("userId", "fresh") == "fresh"
    assert store.get("profileId") is None
    assert len(store) == 0


def test_discard_single_key(store):
    store.store("a", 1)
    store.store("b", 2)

    store.discard("a")
    store.discard("never-stored")

    assert store.as_dict() == {"b": 2}


def test_validate_required(store, caplog):
    store.store("userId", 1)

    assert store.validate_required(["userId"]) is True
    assert store.validate_required(["userId", "orderId"]) is False
    assert "Missing required correlations: orderId" in caplog.text
    assert "Available correlations: userId" in caplog.text


def test_validate_required_can_abort(store):
    with pytest.raises(CorrelationMissing, match="orderId"):
        store.validate_required(["orderId"], abort_on_missing=True)


def test_build_url_auto_detects_placeholders(store):
    store.store("id", 7)
    store.store("sub", 9)

    assert store.build_url("/x/{id}/y/{sub}") == "/x/7/y/9"


def test_build_url_missing_key_returns_none(store, caplog):
    store.store("id", 7)

    assert store.build_url("/x/{id}/y/{sub}") is None
    assert "missing correlation 'sub' for placeholder '{sub}'" in caplog.text


def test_build_url_with_explicit_mapping(store):
    store.store("createdUserId", "u-1")

    url = store.build_url("/users/{userId}/profile", {"userId": "createdUserId"})

    assert url == "/users/u-1/profile"


def test_build_url_replaces_every_occurrence(store):
    store.store("id", 3)

    assert store.build_url("/a/{id}/b/{id}") == "/a/3/b/3"


def test_build_url_without_placeholders(store):
    assert store.build_url("/health") == "/health"


def test_extract_multiple_returns_partial_results(store, caplog):
    response = FakeResponse(201, {"user": {"id": 5, "name": "Ada"}})

    result = store.extract_multiple(response, {"userId": "user.id", "email": "user.email"})

    assert result == {"userId": 5, "email": None}
    assert "Failed to extract all required values" in caplog.text
    assert store.get("userId") == 5
