from __future__ import annotations

from uuid import uuid4

import fakeredis
import pytest
from fastapi.testclient import TestClient


def _create(client: TestClient, **body) -> dict:
    resp = client.post("/game", json={"seed": 42, **body})
    assert resp.status_code == 201
    return resp.json()


def test_healthcheck_and_info(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    assert client.get("/healthcheck").json() == {"status": "ok"}
    assert client.get("/info").json() == {"name": "dealflow", "version": "0.1.0"}


def test_create_game_starts_in_the_intro(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, r = client_and_redis
    state = _create(client, difficulty="HARD")

    assert state["phase"] == "INTRO"
    assert state["difficulty"] == "HARD"
    assert state["seed"] == 42
    assert state["active_scenario_id"] == 1
    assert state["player"]["portfolio"][0]["name"] == "PackFancy Inc."
    assert r.sismember("dealflow:games", state["game_id"])


def test_create_game_uses_default_difficulty(
    client_and_redis: tuple[TestClient, fakeredis.FakeRedis], monkeypatch: pytest.MonkeyPatch
) -> None:
    client, _ = client_and_redis
    monkeypatch.setenv("DEALFLOW_DEFAULT_DIFFICULTY", "EASY")
    assert _create(client)["difficulty"] == "EASY"


def test_create_game_rejects_bad_difficulty(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    resp = client.post("/game", json={"difficulty": "NIGHTMARE"})
    assert resp.status_code == 422


def test_list_and_get(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    a = _create(client)
    b = _create(client)

    listed = client.get("/game").json()["games"]
    assert {g["game_id"] for g in listed} == {a["game_id"], b["game_id"]}

    got = client.get(f"/game/{a['game_id']}")
    assert got.status_code == 200
    assert got.json()["game_id"] == a["game_id"]

    assert client.get(f"/game/{uuid4()}").status_code == 404


def test_action_accepted_and_declined_are_both_200(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    state = _create(client)
    gid = state["game_id"]

    resp = client.post(f"/games/{gid}/actions/choose_scenario", json={"choice_index": 0})
    assert resp.status_code == 200
    body = resp.json()
    assert body["accepted"] is True
    assert body["state"]["phase"] == "LIFE_MANAGEMENT"
    assert len(body["feed_entry_ids"]) == 1

    declined = client.post(f"/games/{gid}/actions/choose_scenario", json={"choice_index": 0})
    assert declined.status_code == 200
    assert declined.json()["accepted"] is False
    assert declined.json()["reason"] == "There is no scenario waiting for a decision"


def test_action_without_body(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    gid = _create(client)["game_id"]
    resp = client.post(f"/games/{gid}/actions/skip_intro")
    assert resp.status_code == 200
    assert resp.json()["state"]["phase"] == "LIFE_MANAGEMENT"

    week = client.post(f"/games/{gid}/actions/advance_week")
    assert week.json()["accepted"] is True
    assert week.json()["state"]["player"]["game_time"]["week"] == 2


def test_unknown_action_and_bad_payload_are_422(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    gid = _create(client)["game_id"]

    resp = client.post(f"/games/{gid}/actions/sell_the_firm", json={})
    assert resp.status_code == 422
    assert "Unknown action" in resp.json()["detail"]

    bad = client.post(f"/games/{gid}/actions/analyze", json={"company_id": "one"})
    assert bad.status_code == 422


def test_action_on_missing_game_is_404(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    resp = client.post(f"/games/{uuid4()}/actions/advance_week")
    assert resp.status_code == 404


def test_feed_newest_first(client_and_redis: tuple[TestClient, fakeredis.FakeRedis]) -> None:
    client, _ = client_and_redis
    gid = _create(client)["game_id"]
    client.post(f"/games/{gid}/actions/skip_intro")
    client.post(f"/games/{gid}/actions/skip_intro")

    feed = client.get(f"/games/{gid}/feed").json()["entries"]
    assert [e["fields"]["type"] for e in feed] == ["COMMAND_DECLINED", "COMMAND_ACCEPTED"]
    assert feed[1]["fields"]["action"] == "skip_intro"

    assert len(client.get(f"/games/{gid}/feed", params={"count": 1}).json()["entries"]) == 1
    assert client.get(f"/games/{gid}/feed", params={"count": 0}).status_code == 422
    assert client.get(f"/games/{uuid4()}/feed").status_code == 404
