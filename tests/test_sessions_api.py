from sqlalchemy.exc import OperationalError

from ledger.api import sessions as sessions_api
from fixtures import parse_sse

COACHING_REPLY = "Notice what happened there. Which part felt rushed?"
COMMITMENT_REPLY = (
    "You already know what listening looks like.\n"
    "COMMITMENT_OPTIONS:\n"
    "1. Ask one question before replying\n"
    "2. Pause three seconds before speaking\n"
    "3. Summarize what I heard\n"
)


def start_session(client, auth_headers):
    r = client.post("/api/sessions/start", headers=auth_headers)
    assert r.status_code == 200
    return r.json()


def reach_commitment(client, auth_headers, backend, principle):
    backend.replies += [COACHING_REPLY, COMMITMENT_REPLY]
    start_session(client, auth_headers)
    client.post("/api/sessions/current/principle", json={"principle_id": principle["id"]}, headers=auth_headers)
    client.post("/api/sessions/current/situation", json={"situation": "I talked over Priya again"}, headers=auth_headers)
    client.post("/api/sessions/current/wedge", json={"wedge": "Meeting"}, headers=auth_headers)
    r = client.post("/api/sessions/current/chat", json={"message": "The standup was running long"}, headers=auth_headers)
    return parse_sse(r.text)


def finish_session(client, auth_headers, backend, principle, feedback=1):
    reach_commitment(client, auth_headers, backend, principle)
    client.post("/api/sessions/current/commitment", json={"option": 0}, headers=auth_headers)
    r = client.post("/api/sessions/current/feedback", json={"value": feedback}, headers=auth_headers)
    assert r.status_code == 200
    return r.json()


def test_start_without_principles_points_to_onboarding(client, auth_headers):
    data = start_session(client, auth_headers)
    assert data["next_action"] == "onboarding"
    assert data["principles"] == []
    assert data["session"]["phase"] == "select_principle"
    assert data["session"]["framework"]["label"]


def test_start_lists_principles(client, auth_headers, principle):
    data = start_session(client, auth_headers)
    assert data["next_action"] == "select_principle"
    assert [p["id"] for p in data["principles"]] == [principle["id"]]


def test_current_without_session(client, auth_headers):
    assert client.get("/api/sessions/current", headers=auth_headers).status_code == 404


def test_unknown_principle_is_not_found(client, auth_headers, principle):
    start_session(client, auth_headers)
    r = client.post("/api/sessions/current/principle", json={"principle_id": principle["id"] + 999}, headers=auth_headers)
    assert r.status_code == 404


def test_out_of_order_action_conflicts(client, auth_headers, principle):
    start_session(client, auth_headers)
    r = client.post("/api/sessions/current/situation", json={"situation": "too early"}, headers=auth_headers)
    assert r.status_code == 409
    assert client.get("/api/sessions/current", headers=auth_headers).json()["phase"] == "select_principle"


def test_blank_situation_is_rejected(client, auth_headers, principle):
    start_session(client, auth_headers)
    client.post("/api/sessions/current/principle", json={"principle_id": principle["id"]}, headers=auth_headers)
    r = client.post("/api/sessions/current/situation", json={"situation": "  "}, headers=auth_headers)
    assert r.status_code == 422


def test_wedge_streams_first_reply(client, auth_headers, backend, principle):
    backend.replies.append(COACHING_REPLY)
    start_session(client, auth_headers)
    client.post("/api/sessions/current/principle", json={"principle_id": principle["id"]}, headers=auth_headers)
    client.post("/api/sessions/current/situation", json={"situation": "I talked over Priya again"}, headers=auth_headers)

    calls_before = len(backend.calls)
    r = client.post("/api/sessions/current/wedge", json={"wedge": "Meeting"}, headers=auth_headers)
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/event-stream")

    events = parse_sse(r.text)
    assert events[0] == ("start", {"phase": "coaching"})
    assert events[-1] == ("done", {"phase": "coaching", "text": COACHING_REPLY, "options": []})

    prompt, messages = backend.calls[calls_before]
    assert 'THE USER\'S PRINCIPLE: "I listen fully, even when I\'m busy"' in prompt
    assert "THE CONTEXT: Meeting" in prompt
    assert messages[0].text == "I'm dealing with a meeting situation. Here's what happened: I talked over Priya again"

    state = client.get("/api/sessions/current", headers=auth_headers).json()
    assert [m["role"] for m in state["messages"]] == ["user", "assistant"]
    assert state["streaming"] is False


def test_commitment_options_end_coaching(client, auth_headers, backend, principle):
    events = reach_commitment(client, auth_headers, backend, principle)
    done = events[-1][1]
    assert done["phase"] == "commitment"
    assert done["options"] == [
        "Ask one question before replying",
        "Pause three seconds before speaking",
        "Summarize what I heard",
    ]
    assert "COMMITMENT_OPTIONS" not in done["text"]

    state = client.get("/api/sessions/current", headers=auth_headers).json()
    assert state["phase"] == "commitment"
    assert all("COMMITMENT_OPTIONS" not in m["text"] for m in state["messages"])

    r = client.post("/api/sessions/current/chat", json={"message": "more?"}, headers=auth_headers)
    assert r.status_code == 409


def test_commitment_out_of_range(client, auth_headers, backend, principle):
    reach_commitment(client, auth_headers, backend, principle)
    r = client.post("/api/sessions/current/commitment", json={"option": 3}, headers=auth_headers)
    assert r.status_code == 422


def test_full_session_is_stored_once(client, auth_headers, backend, principle):
    state = finish_session(client, auth_headers, backend, principle)
    assert state["phase"] == "done"
    assert state["commitment"] == "Ask one question before replying"
    assert state["session_id"]

    r = client.post("/api/sessions/current/feedback", json={"value": 1}, headers=auth_headers)
    assert r.status_code == 409

    stored = client.get("/api/sessions", headers=auth_headers).json()
    assert len(stored) == 1
    record = stored[0]
    assert record["id"] == state["session_id"]
    assert record["principle_id"] == principle["id"]
    assert record["wedge_label"] == "Meeting"
    assert record["framework_used"] == state["framework"]["id"]
    assert record["framework_label"] == state["framework"]["label"]
    assert record["coaching_script"].startswith(COACHING_REPLY + "\n\n")
    assert record["follow_up_status"] == "pending"
    assert record["feedback"] == 1


def test_failed_save_stays_in_feedback(client, auth_headers, backend, principle, monkeypatch):
    reach_commitment(client, auth_headers, backend, principle)
    client.post("/api/sessions/current/commitment", json={"option": 1}, headers=auth_headers)

    async def broken_save(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("database is locked"))

    monkeypatch.setattr(sessions_api, "save_coaching_session", broken_save)
    r = client.post("/api/sessions/current/feedback", json={"value": 0}, headers=auth_headers)
    assert r.status_code == 503
    assert client.get("/api/sessions/current", headers=auth_headers).json()["phase"] == "feedback"

    monkeypatch.undo()
    r = client.post("/api/sessions/current/feedback", json={"value": 0}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["phase"] == "done"
    assert len(client.get("/api/sessions", headers=auth_headers).json()) == 1


def test_invalid_feedback_value(client, auth_headers, backend, principle):
    reach_commitment(client, auth_headers, backend, principle)
    client.post("/api/sessions/current/commitment", json={"option": 0}, headers=auth_headers)
    r = client.post("/api/sessions/current/feedback", json={"value": 5}, headers=auth_headers)
    assert r.status_code == 422


def test_crisis_situation_stops_before_backend(client, auth_headers, backend, principle):
    calls_before = len(backend.calls)
    start_session(client, auth_headers)
    client.post("/api/sessions/current/principle", json={"principle_id": principle["id"]}, headers=auth_headers)
    r = client.post("/api/sessions/current/situation", json={"situation": "honestly I want to kill myself"}, headers=auth_headers)

    state = r.json()
    assert state["phase"] == "describe_situation"
    assert state["crisis"] is True
    assert "988" in state["crisis_message"]
    assert len(backend.calls) == calls_before


def test_crisis_chat_message_is_not_sent(client, auth_headers, backend, principle):
    backend.replies.append(COACHING_REPLY)
    start_session(client, auth_headers)
    client.post("/api/sessions/current/principle", json={"principle_id": principle["id"]}, headers=auth_headers)
    client.post("/api/sessions/current/situation", json={"situation": "I snapped at my team"}, headers=auth_headers)
    client.post("/api/sessions/current/wedge", json={"wedge": "Conflict"}, headers=auth_headers)
    calls_before = len(backend.calls)

    r = client.post("/api/sessions/current/chat", json={"message": "I don't want to live like this"}, headers=auth_headers)
    state = r.json()
    assert state["crisis"] is True
    assert state["phase"] == "coaching"
    assert len(state["messages"]) == 2
    assert len(backend.calls) == calls_before


def test_abandon_discards_session(client, auth_headers, principle):
    start_session(client, auth_headers)
    assert client.delete("/api/sessions/current", headers=auth_headers).json() == {"status": "abandoned"}
    assert client.get("/api/sessions/current", headers=auth_headers).status_code == 404
    assert client.get("/api/sessions", headers=auth_headers).json() == []


def test_follow_up_first_write_wins(client, auth_headers, backend, principle):
    session_id = finish_session(client, auth_headers, backend, principle)["session_id"]

    pending = client.get("/api/sessions/follow-ups", headers=auth_headers).json()
    assert [s["id"] for s in pending] == [session_id]
    dashboard = client.get("/api/dashboard", headers=auth_headers).json()
    assert [s["id"] for s in dashboard["pending_follow_ups"]] == [session_id]

    r = client.post(f"/api/sessions/{session_id}/follow-up", json={"status": "partly", "note": "  once  "}, headers=auth_headers)
    assert r.status_code == 200
    assert r.json()["follow_up_status"] == "partly"
    assert r.json()["follow_up_note"] == "once"
    assert r.json()["followed_up_at"]

    r = client.post(f"/api/sessions/{session_id}/follow-up", json={"status": "yes"}, headers=auth_headers)
    assert r.status_code == 409
    assert client.get("/api/sessions", headers=auth_headers).json()[0]["follow_up_status"] == "partly"
    assert client.get("/api/sessions/follow-ups", headers=auth_headers).json() == []


def test_follow_up_rejects_pending_status(client, auth_headers, backend, principle):
    session_id = finish_session(client, auth_headers, backend, principle)["session_id"]
    r = client.post(f"/api/sessions/{session_id}/follow-up", json={"status": "pending"}, headers=auth_headers)
    assert r.status_code == 422


def test_follow_up_on_someone_elses_session(client, auth_headers, backend, principle):
    session_id = finish_session(client, auth_headers, backend, principle)["session_id"]
    r = client.post("/api/auth/register", json={"email": "other@example.com", "password": "another1"})
    other = {"Authorization": f"Bearer {r.json()['access_token']}"}

    r = client.post(f"/api/sessions/{session_id}/follow-up", json={"status": "yes"}, headers=other)
    assert r.status_code == 404
