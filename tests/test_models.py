from __future__ import annotations

import pytest

from savemychat.errors import ValidationError
from savemychat.models import BackupData, Conversation, Snippet


def test_conversation_ignore_is_tri_state() -> None:
    base = {"canonical_url": "u", "source": "s", "title": "t", "content": "c"}

    assert Conversation.from_dict(base).ignore is None
    assert Conversation.from_dict({**base, "ignore": False}).ignore is False
    assert Conversation.from_dict({**base, "ignore": True}).ignore is True


def test_timestamps_are_normalised_to_utc() -> None:
    conv = Conversation.from_dict(
        {"created_at": "2024-01-15T10:30:00.000Z", "updated_at": "2024-01-15T12:30:00+02:00"}
    )

    assert conv.created_at == "2024-01-15T10:30:00+00:00"
    assert conv.updated_at == "2024-01-15T10:30:00+00:00"


@pytest.mark.parametrize(
    ("payload", "field"),
    [
        ({"tags": "a,b"}, "tags"),
        ({"tags": ["a", 1]}, "tags"),
        ({"version": 0}, "version"),
        ({"collection_id": "seven"}, "collection_id"),
        ({"collection_id": 2**63}, "collection_id"),
        ({"collection_id": 1.9}, "collection_id"),
        ({"id": 3.5}, "id"),
        ({"version": 2.25}, "version"),
        ({"ignore": "true"}, "ignore"),
        ({"title": 5}, "title"),
        ({"created_at": "yesterday"}, "created_at"),
    ],
)
def test_conversation_shape_errors_name_the_field(payload: dict, field: str) -> None:
    with pytest.raises(ValidationError) as excinfo:
        Conversation.from_dict(payload)

    assert excinfo.value.field == field


def test_integral_float_ids_are_accepted() -> None:
    conv = Conversation.from_dict({"collection_id": 4.0, "version": 2.0})

    assert conv.collection_id == 4
    assert conv.version == 2


def test_free_text_is_kept_verbatim() -> None:
    content = "```python\nprint(1)\n```\n\n"
    conv = Conversation.from_dict(
        {
            "canonical_url": "  https://claude.ai/chat/1  ",
            "source": "claude",
            "title": "  Padded title ",
            "description": "\tnotes\n",
            "content": content,
        }
    )

    assert conv.canonical_url == "https://claude.ai/chat/1"
    assert conv.title == "  Padded title "
    assert conv.description == "\tnotes\n"
    assert conv.content == content


@pytest.mark.parametrize("field", ["title", "content"])
def test_whitespace_only_text_is_missing(field: str) -> None:
    payload = {"canonical_url": "u", "source": "s", "title": "t", "content": "c", field: " \n"}

    with pytest.raises(ValidationError) as excinfo:
        Conversation.from_dict(payload).require_fields()

    assert excinfo.value.field == field


def test_to_dict_never_emits_null_tags_or_ignore() -> None:
    payload = Conversation(canonical_url="u").to_dict()

    assert payload["tags"] == []
    assert payload["ignore"] is False


def test_snippet_requires_object() -> None:
    with pytest.raises(ValidationError, match="snippet must be an object"):
        Snippet.from_dict("nope")


def test_backup_item_count() -> None:
    backup = BackupData.from_dict(
        {"conversations": [{}, {}], "snippets": [{}], "collections": None, "settings": {}}
    )

    assert backup.collections == []
    assert backup.item_count == 4
