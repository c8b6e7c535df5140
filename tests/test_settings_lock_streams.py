from __future__ import annotations

import fakeredis
import pytest

from dealflow.agents.ag2_backend import _extract_last_content
from dealflow.agents.autogen_config import llm_config_from_settings
from dealflow.lock import game_lock, lock_key
from dealflow.models import Difficulty
from dealflow.settings import Settings, settings_from_env
from dealflow.streams import Feed, publish, publish_many, read_feed


def test_settings_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "REDIS_URL",
        "DEALFLOW_LOG_LEVEL",
        "DEALFLOW_DEFAULT_DIFFICULTY",
        "DEALFLOW_LOCK_TTL_MS",
        "OPENAI_MODEL",
        "OPENAI_BASE_URL",
        "OPENAI_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)

    assert settings_from_env(load_env_file=False) == Settings()


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")
    monkeypatch.setenv("DEALFLOW_LOG_LEVEL", "debug")
    monkeypatch.setenv("DEALFLOW_DEFAULT_DIFFICULTY", "HARD")
    monkeypatch.setenv("DEALFLOW_LOCK_TTL_MS", "250")
    monkeypatch.setenv("OPENAI_BASE_URL", "")

    s = settings_from_env(load_env_file=False)
    assert s.redis_url == "redis://cache:6379/2"
    assert s.log_level == "DEBUG"
    assert s.default_difficulty == Difficulty.hard
    assert s.lock_ttl_ms == 250
    assert s.openai_base_url is None


def test_settings_reject_bad_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DEALFLOW_DEFAULT_DIFFICULTY", "NIGHTMARE")
    with pytest.raises(ValueError, match="DEALFLOW_DEFAULT_DIFFICULTY"):
        settings_from_env(load_env_file=False)

    monkeypatch.setenv("DEALFLOW_DEFAULT_DIFFICULTY", "EASY")
    monkeypatch.setenv("DEALFLOW_LOCK_TTL_MS", "soon")
    with pytest.raises(ValueError, match="must be an integer"):
        settings_from_env(load_env_file=False)


def test_llm_config_needs_a_key_or_endpoint() -> None:
    with pytest.raises(RuntimeError, match="OPENAI_API_KEY"):
        llm_config_from_settings(Settings(openai_api_key=None, openai_base_url=None))


def test_extract_last_content() -> None:
    messages = [
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "  buy the dip  "},
        {"role": "assistant", "content": ""},
    ]
    assert _extract_last_content(messages) == "buy the dip"
    assert _extract_last_content("nope") == ""


def test_lock_is_exclusive_and_released() -> None:
    r = fakeredis.FakeRedis(decode_responses=True)

    with game_lock(r=r, game_id="g1", ttl_ms=1_000):
        assert r.get(lock_key("g1")) == "1"
        assert 0 < r.pttl(lock_key("g1")) <= 1_000
        with pytest.raises(ValueError, match="Game is busy"):
            with game_lock(r=r, game_id="g1", ttl_ms=1_000):
                pass
        # other games are independent
        with game_lock(r=r, game_id="g2", ttl_ms=1_000):
            pass

    assert r.get(lock_key("g1")) is None


def test_lock_released_on_error() -> None:
    r = fakeredis.FakeRedis(decode_responses=True)
    with pytest.raises(KeyError):
        with game_lock(r=r, game_id="g1", ttl_ms=1_000):
            raise KeyError("boom")
    assert r.get(lock_key("g1")) is None


def test_feed_publish_and_read_newest_first() -> None:
    r = fakeredis.FakeRedis(decode_responses=True)
    feed = Feed(game_id="g1")
    assert feed.key == "feed:g1"

    first = publish(r=r, feed=feed, fields={"type": "COMMAND_ACCEPTED", "cursor": 0})
    ids = publish_many(r=r, feed=feed, entries=[{"type": "WEEK_PROCESSED", "week": 2}, {"type": "GAME_OVER"}])

    rows = read_feed(r=r, feed=feed)
    assert [entry_id for entry_id, _ in rows] == [ids[1], ids[0], first]
    assert rows[1][1] == {"type": "WEEK_PROCESSED", "week": "2"}
    assert len(read_feed(r=r, feed=feed, count=1)) == 1
    assert read_feed(r=r, feed=Feed(game_id="other")) == []
