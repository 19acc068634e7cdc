from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from savemychat.config import CONFIG_ENV_OVERRIDES
from savemychat.store import ChatStore


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("SAVEMYCHAT_CONFIG", str(tmp_path / "config.json"))
    for env_var in CONFIG_ENV_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.delenv("SAVEMYCHAT_DEBUG", raising=False)
    monkeypatch.delenv("SAVEMYCHAT_ACCESS_LOGS", raising=False)


@pytest.fixture
def store(tmp_path: Path) -> Iterator[ChatStore]:
    chat_store = ChatStore(tmp_path / "chat.sqlite")
    try:
        yield chat_store
    finally:
        chat_store.close()
