import uuid

from fastapi.testclient import TestClient

from quiz_server.main import app
from quiz_server.errors import RateLimited
from quiz_server.services.ai.adapters import AIProviderAdapter, MockAIAdapter
from quiz_server.services.ai.orchestrator import AIOrchestrator


client = TestClient(app)


class _ThrottledAdapter(AIProviderAdapter):
    name = "throttled"

    def generate(self, topic, difficulty):
        raise RateLimited("quota exceeded", provider=self.name)

    def validate_answer(self, question, answer):
        raise RateLimited("quota exceeded", provider=self.name)


def _admin_headers() -> dict:
    email = f"admin_{uuid.uuid4().hex[:8]}@example.com"
    assert client.post("/auth/register", json={"email": email, "password": "Passw0rd!"}).status_code == 201
    r = client.post("/auth/login", json={"email": email, "password": "Passw0rd!"})
    return {"Authorization": f"Bearer {r.json()['token']}"}


def _category(headers, name="History") -> int:
    r = client.post("/admin/categories", json={"name": name}, headers=headers)
    assert r.status_code == 201
    return r.json()["category"]["id"]


def test_register_and_login_errors(monkeypatch):
    r = client.post("/auth/register", json={"email": "not-an-email", "password": "Passw0rd!"})
    assert r.status_code == 400
    r = client.post("/auth/register", json={"email": "short@example.com", "password": "abc"})
    assert r.status_code == 400

    assert client.post("/auth/register", json={"email": "dup@example.com", "password": "Passw0rd!"}).status_code == 201
    assert client.post("/auth/register", json={"email": "dup@example.com", "password": "Passw0rd!"}).status_code == 400
    bad = client.post("/auth/login", json={"email": "dup@example.com", "password": "wrong-pass"})
    assert bad.status_code == 401
    assert bad.json() == {"ok": False, "error": "Invalid credentials"}

    monkeypatch.setenv("ADMIN_TOKEN", "s3cret")
    r = client.post("/auth/register", json={"email": "gated@example.com", "password": "Passw0rd!"})
    assert r.status_code == 401
    r = client.post("/auth/register", json={"email": "gated@example.com", "password": "Passw0rd!"},
                    headers={"X-Admin-Token": "s3cret"})
    assert r.status_code == 201


def test_admin_routes_require_token():
    assert client.post("/admin/categories", json={"name": "X"}).status_code in (401, 403)
    r = client.post("/admin/categories", json={"name": "X"}, headers={"Authorization": "Bearer garbage"})
    assert r.status_code == 401


def test_categories_are_listed_and_unique():
    headers = _admin_headers()
    _category(headers, "Science")
    _category(headers, "Art")
    assert client.post("/admin/categories", json={"name": "Art"}, headers=headers).status_code == 400
    names = [c["name"] for c in client.get("/categories").json()["categories"]]
    assert names == ["Art", "Science"]


def test_authored_question_validation():
    headers = _admin_headers()
    cat = _category(headers)
    r = client.post("/admin/questions", headers=headers, json={
        "statement": "Who?",
        "difficulty": 2,
        "category_id": cat,
        "options": [{"text": "A", "is_correct": True}, {"text": "A", "is_correct": False},
                    {"text": "B", "is_correct": False}, {"text": "C", "is_correct": False}],
    })
    assert r.status_code == 400
    assert "duplicate" in r.json()["error"]

    r = client.post("/admin/questions", headers=headers, json={
        "statement": "Who?", "difficulty": 9, "category_id": cat, "options": [],
    })
    assert r.status_code == 400


def test_generate_batch_then_verify(monkeypatch):
    headers = _admin_headers()
    cat = _category(headers)
    monkeypatch.setattr("quiz_server.services.ai.orchestrator._orchestrator", AIOrchestrator([MockAIAdapter()]))

    r = client.post("/admin/questions/generate", json={"category_id": cat, "difficulty": 3, "quantity": 2},
                    headers=headers)
    assert r.status_code == 201
    batch = r.json()
    assert batch["status"] == "completed"
    assert batch["generated"] == 2

    pending = client.get("/admin/questions/unverified", params={"batch_id": batch["batch_id"]}, headers=headers)
    questions = pending.json()["questions"]
    assert len(questions) == 2
    assert questions[0]["explanation_correct"]

    qid = questions[0]["id"]
    v = client.post(f"/admin/questions/{qid}/verify", headers=headers)
    assert v.status_code == 200
    assert v.json()["question"]["admin_verified"] is True

    nxt = client.get("/games/next", params={"category_id": cat, "difficulty": 3})
    assert nxt.json()["source"] == "store"
    assert nxt.json()["question"]["id"] == qid

    assert client.post("/admin/questions/999999/verify", headers=headers).status_code == 404


def test_generate_batch_surfaces_provider_exhaustion(monkeypatch):
    headers = _admin_headers()
    cat = _category(headers)
    monkeypatch.setattr("quiz_server.services.ai.orchestrator._orchestrator", AIOrchestrator([_ThrottledAdapter()]))

    r = client.post("/admin/questions/generate", json={"category_id": cat, "difficulty": 1, "quantity": 1},
                    headers=headers)
    assert r.status_code == 503
    assert r.json()["error"].startswith("All AI providers failed")


def test_ai_providers_and_validate(monkeypatch):
    headers = _admin_headers()
    orch = AIOrchestrator([_ThrottledAdapter(), MockAIAdapter()])
    monkeypatch.setattr("quiz_server.services.ai.orchestrator._orchestrator", orch)

    v = client.post("/admin/ai/validate", json={"question": "2+2?", "answer": "4"}, headers=headers)
    assert v.status_code == 200
    assert v.json()["provider"] == "mock"
    assert v.json()["failover"] is True

    p = client.get("/admin/ai/providers", headers=headers).json()
    assert p["active"] == "mock"
    assert [x["name"] for x in p["providers"]] == ["throttled", "mock"]
    assert "throttled" in p["last_errors"]


def test_validate_without_providers_is_503():
    headers = _admin_headers()
    r = client.post("/admin/ai/validate", json={"question": "2+2?", "answer": "4"}, headers=headers)
    assert r.status_code == 503
    assert r.json() == {"ok": False, "error": "No AI providers available"}


def test_room_lifecycle():
    headers = _admin_headers()
    r = client.post("/admin/rooms", json={"name": "Class 5B", "max_players": 2, "filter_difficulties": [1, 2]},
                    headers=headers)
    assert r.status_code == 201
    room = r.json()["room"]
    code = room["room_code"]
    assert len(code) == 6
    assert room["active_players"] == 0

    pid = client.post("/players", json={"name": "Kid", "age": 10}).json()["player"]["id"]
    start = client.post("/games/start", json={"player_id": pid, "room_code": code.lower()})
    assert start.status_code == 201
    assert start.json()["room"]["room_code"] == code

    looked_up = client.get(f"/rooms/{code}").json()["room"]
    assert looked_up["active_players"] == 1

    board = client.get(f"/rooms/{code}/leaderboard").json()
    assert board["entries"][0]["player_name"] == "Kid"

    closed = client.patch(f"/admin/rooms/{room['id']}/status", json={"status": "closed"}, headers=headers)
    assert closed.json()["room"]["status"] == "closed"
    again = client.post("/games/start", json={"player_id": pid, "room_code": code})
    assert again.status_code == 409

    bad = client.patch(f"/admin/rooms/{room['id']}/status", json={"status": "exploded"}, headers=headers)
    assert bad.status_code == 400
    assert client.get("/rooms/ZZZZZZ").status_code == 404


def test_room_filters_are_validated():
    headers = _admin_headers()
    r = client.post("/admin/rooms", json={"name": "Bad", "filter_difficulties": [7]}, headers=headers)
    assert r.status_code == 400
    r = client.post("/admin/rooms", json={"name": " "}, headers=headers)
    assert r.status_code == 400
