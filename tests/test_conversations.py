from __future__ import annotations

import sqlite3
from typing import Any

import pytest

from savemychat.deadline import Deadline
from savemychat.errors import Cancelled, NotFound, StoreError, Timeout, ValidationError
from savemychat.models import Collection, Conversation, SearchFilters
from savemychat.store import ChatStore
from savemychat.store import conversations as store_conversations


def _conversation(**overrides: Any) -> Conversation:
    payload: dict[str, Any] = {
        "canonical_url": "https://chat.openai.com/c/abc",
        "source": "chatgpt",
        "title": "Login endpoint",
        "content": "How do I add a login endpoint?",
    }
    payload.update(overrides)
    return Conversation.from_dict(payload)


def _row_count(store: ChatStore) -> int:
    return int(store.conn.execute("SELECT COUNT(*) FROM conversations").fetchone()[0])


def test_reconcile_creates_then_updates_with_version_bump(store: ChatStore) -> None:
    first = store.reconcile_conversation(_conversation())
    second = store.reconcile_conversation(_conversation(title="Login endpoint v2"))

    assert first.created is True
    assert first.record.version == 1
    assert second.created is False
    assert second.record.version == 2
    assert second.record.id == first.record.id
    assert second.record.created_at == first.record.created_at
    assert second.record.title == "Login endpoint v2"
    assert _row_count(store) == 1

    stored = store.get_conversation(first.record.id)
    assert stored.version == 2
    assert stored.title == "Login endpoint v2"


def test_version_increments_by_one_per_update(store: ChatStore) -> None:
    versions = [store.upsert_conversation(_conversation()).version for _ in range(4)]

    assert versions == [1, 2, 3, 4]


def test_update_ignores_incoming_version_and_created_at(store: ChatStore) -> None:
    created = store.upsert_conversation(_conversation())

    updated = store.upsert_conversation(
        _conversation(version=40, created_at="2001-01-01T00:00:00Z")
    )

    assert updated.version == 2
    assert updated.created_at == created.created_at


def test_create_keeps_supplied_version_and_timestamps(store: ChatStore) -> None:
    conv = store.upsert_conversation(
        _conversation(
            version=3,
            created_at="2024-01-15T10:30:00.000Z",
            updated_at="2024-01-16T08:00:00Z",
        )
    )

    assert conv.version == 3
    assert conv.created_at == "2024-01-15T10:30:00+00:00"
    assert conv.updated_at == "2024-01-16T08:00:00+00:00"


def test_update_refreshes_updated_at(store: ChatStore) -> None:
    store.upsert_conversation(_conversation(updated_at="2020-01-01T00:00:00Z"))

    updated = store.upsert_conversation(_conversation())

    assert updated.updated_at is not None
    assert updated.updated_at > "2020-01-01T00:00:00+00:00"


def test_ignore_is_sticky_across_reconciliation(store: ChatStore) -> None:
    store.upsert_conversation(_conversation(ignore=True))

    after_false = store.upsert_conversation(_conversation(ignore=False))
    after_absent = store.upsert_conversation(_conversation())

    assert after_false.ignore is True
    assert after_absent.ignore is True
    assert store.get_conversation(after_absent.id).ignore is True


def test_ignore_defaults_to_false_and_can_be_set_by_update(store: ChatStore) -> None:
    created = store.upsert_conversation(_conversation())
    updated = store.upsert_conversation(_conversation(ignore=True))

    assert created.ignore is False
    assert updated.ignore is True


def test_set_conversation_ignore_clears_without_version_bump(store: ChatStore) -> None:
    conv = store.upsert_conversation(_conversation(ignore=True))

    cleared = store.set_conversation_ignore(conv.id, False)

    assert cleared.ignore is False
    assert cleared.version == conv.version
    with pytest.raises(NotFound):
        store.set_conversation_ignore(9999, True)


@pytest.mark.parametrize("field", ["canonical_url", "source", "title", "content"])
def test_missing_required_field_rejected_before_write(store: ChatStore, field: str) -> None:
    with pytest.raises(ValidationError) as excinfo:
        store.reconcile_conversation(_conversation(**{field: ""}))

    assert excinfo.value.field == field
    assert field in str(excinfo.value)
    assert _row_count(store) == 0


def test_missing_field_on_existing_url_leaves_row_untouched(store: ChatStore) -> None:
    conv = store.upsert_conversation(_conversation())

    with pytest.raises(ValidationError):
        store.upsert_conversation(_conversation(title="  "))

    stored = store.get_conversation(conv.id)
    assert stored.version == 1
    assert stored.title == "Login endpoint"


def test_update_keeps_source_and_share_url(store: ChatStore) -> None:
    store.upsert_conversation(_conversation(share_url="https://chat.openai.com/share/1"))

    updated = store.upsert_conversation(_conversation(source="claude"))

    assert updated.source == "chatgpt"
    assert updated.share_url == "https://chat.openai.com/share/1"


def test_tags_are_a_set(store: ChatStore) -> None:
    conv = store.upsert_conversation(_conversation(tags=["a", " a ", "", "b"]))

    assert conv.tags == ["a", "b"]
    assert store.upsert_conversation(_conversation()).tags == []
    assert store.get_conversation(conv.id).to_dict()["tags"] == []


def test_unknown_collection_is_a_validation_error(store: ChatStore) -> None:
    with pytest.raises(ValidationError) as excinfo:
        store.upsert_conversation(_conversation(collection_id=999))

    assert excinfo.value.field == "collection_id"
    assert _row_count(store) == 0


def test_deleting_collection_detaches_conversations(store: ChatStore) -> None:
    collection = store.upsert_collection(Collection(name="Work"))
    conv = store.upsert_conversation(_conversation(collection_id=collection.id))

    store.delete_collection(collection.id)

    assert store.get_conversation(conv.id).collection_id is None


def test_lookup_and_delete(store: ChatStore) -> None:
    conv = store.upsert_conversation(_conversation())

    assert store.get_conversation_by_url(conv.canonical_url).id == conv.id
    store.delete_conversation(conv.id)

    with pytest.raises(NotFound):
        store.get_conversation(conv.id)
    with pytest.raises(NotFound):
        store.get_conversation_by_url(conv.canonical_url)
    with pytest.raises(NotFound):
        store.delete_conversation(conv.id)


def test_concurrent_create_is_retried_as_update(
    store: ChatStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    original = store.upsert_conversation(_conversation())
    real_find = store_conversations.find_by_url
    calls: list[str] = []

    def stale_find(chat_store: ChatStore, url: str) -> Conversation | None:
        calls.append(url)
        if len(calls) == 1:
            # Another writer inserted the row after this lookup.
            return None
        return real_find(chat_store, url)

    monkeypatch.setattr(store_conversations, "find_by_url", stale_find)

    outcome = store.reconcile_conversation(_conversation(title="Second writer"))

    assert outcome.created is False
    assert outcome.record.id == original.id
    assert outcome.record.version == 2
    assert len(calls) == 2
    assert _row_count(store) == 1


def test_stale_version_is_not_overwritten(
    store: ChatStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    store.upsert_conversation(_conversation())
    real_update = store_conversations._update
    bumped: list[bool] = []

    def racing_update(chat_store: ChatStore, merged: Conversation, *, expected_version: int) -> bool:
        if not bumped:
            bumped.append(True)
            chat_store.conn.execute("UPDATE conversations SET version = version + 1")
            chat_store.conn.commit()
        return real_update(chat_store, merged, expected_version=expected_version)

    monkeypatch.setattr(store_conversations, "_update", racing_update)

    outcome = store.reconcile_conversation(_conversation(title="After race"))

    # The swap against version 1 fails, the retry builds on the racing version 2.
    assert outcome.record.version == 3
    assert store.get_conversation(outcome.record.id).title == "After race"


def test_expired_deadline_never_starts_a_write(store: ChatStore) -> None:
    with pytest.raises(Timeout):
        store.reconcile_conversation(_conversation(), Deadline(0))

    assert _row_count(store) == 0


def test_cancelled_deadline_raises_cancelled(store: ChatStore) -> None:
    deadline = Deadline()
    deadline.cancel()

    with pytest.raises(Cancelled) as excinfo:
        store.reconcile_conversation(_conversation(), deadline)

    assert not isinstance(excinfo.value, Timeout)
    assert _row_count(store) == 0


def test_store_errors_are_wrapped(store: ChatStore) -> None:
    store.conn.execute("DROP TABLE conversations")

    with pytest.raises(StoreError) as excinfo:
        store.search_conversations()

    assert isinstance(excinfo.value.__cause__, sqlite3.Error)


def _seed(store: ChatStore, suffix: str, **overrides: Any) -> Conversation:
    return store.upsert_conversation(
        _conversation(canonical_url=f"https://chat.example/c/{suffix}", **overrides)
    )


def test_tag_filter_is_set_overlap(store: ChatStore) -> None:
    xy = _seed(store, "xy", tags=["x", "y"])
    x = _seed(store, "x", tags=["x"])
    _seed(store, "y", tags=["y"])
    _seed(store, "none")

    results = store.search_conversations(SearchFilters(tags=["x"]))

    assert {conv.id for conv in results} == {xy.id, x.id}


def test_search_is_case_insensitive_substring(store: ChatStore) -> None:
    by_title = _seed(store, "1", title="Fix LOGIN bug")
    by_description = _seed(store, "2", description="about login flows")
    by_content = _seed(store, "3", content="the Login page")
    _seed(store, "4", title="Unrelated", content="nothing here")

    results = store.search_conversations(SearchFilters(query="login"))

    assert {conv.id for conv in results} == {by_title.id, by_description.id, by_content.id}


def test_search_folds_case_beyond_ascii(store: ChatStore) -> None:
    paris = _seed(store, "1", title="Été à Paris")
    greek = _seed(store, "2", content="ΣΗΜΕΙΩΣΕΙΣ για το API")
    _seed(store, "3", title="Summer in Rome")

    assert [c.id for c in store.search_conversations(SearchFilters(query="ÉTÉ"))] == [paris.id]
    assert [c.id for c in store.search_conversations(SearchFilters(query="été"))] == [paris.id]
    assert [
        c.id for c in store.search_conversations(SearchFilters(query="σημειωσεισ"))
    ] == [greek.id]


def test_search_treats_wildcards_literally(store: ChatStore) -> None:
    percent = _seed(store, "1", title="100% done")
    _seed(store, "2", title="1000 done")

    results = store.search_conversations(SearchFilters(query="100%"))

    assert [conv.id for conv in results] == [percent.id]


def test_search_filters_combine(store: ChatStore) -> None:
    collection = store.upsert_collection(Collection(name="Work"))
    match = _seed(store, "1", source="claude", tags=["a"], collection_id=collection.id)
    _seed(store, "2", source="claude", tags=["a"])
    _seed(store, "3", source="chatgpt", tags=["a"], collection_id=collection.id)

    results = store.search_conversations(
        SearchFilters(source="claude", tags=["a", "z"], collection_id=collection.id)
    )

    assert [conv.id for conv in results] == [match.id]


def test_search_returns_most_recent_first_and_caps_at_100(store: ChatStore) -> None:
    for i in range(105):
        _seed(store, str(i), updated_at=f"2024-01-01T{i // 60:02d}:{i % 60:02d}:00Z")

    results = store.search_conversations()

    assert len(results) == 100
    assert results[0].canonical_url == "https://chat.example/c/104"
    assert results[-1].canonical_url == "https://chat.example/c/5"
    stamps = [conv.updated_at for conv in results]
    assert stamps == sorted(stamps, reverse=True)


def test_search_with_no_matches_is_empty_not_error(store: ChatStore) -> None:
    assert store.search_conversations(SearchFilters(source="nobody")) == []
