from __future__ import annotations

from threading import Event

import pytest
from fastapi.testclient import TestClient

from storyforge.config import AppConfig, GenerationConfig, LLMConfig, WebAuthConfig, WebConfig
from storyforge.generation import GenerationContext, GenerationJobManager, Paginator, StoryGenerator
from storyforge.web import create_app
from storyforge.workflow import SessionRegistry, WorkflowController

STRUCTURE = {
    "title": "The Lighthouse",
    "synopsis": "A keeper waits.",
    "chapters": [
        {"number": 1, "title": "Dusk", "summary": "The lamp is lit.", "target_pages": 1},
        {"number": 2, "title": "Night", "summary": "No ship.", "target_pages": 2},
    ],
}


class _Writer:
    def __init__(self) -> None:
        self.gate = Event()
        self.gate.set()

    def write_chapter(self, chapter, structure, *, context):
        assert self.gate.wait(timeout=5)
        return " ".join(f"c{chapter.number}w{index}" for index in range(chapter.target_pages * 5))


@pytest.fixture()
def writer() -> _Writer:
    return _Writer()


@pytest.fixture()
def manager(writer: _Writer):
    manager = GenerationJobManager(writer, paginator=Paginator(5), max_pages=10, max_workers=1)
    yield manager
    writer.gate.set()
    manager.shutdown()


@pytest.fixture()
def client(manager: GenerationJobManager) -> TestClient:
    return TestClient(create_app(manager))


def test_health_check(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_start_and_poll_job(client: TestClient, manager: GenerationJobManager) -> None:
    response = client.post("/jobs", json=STRUCTURE)
    assert response.status_code == 202
    job_id = response.json()["job_id"]

    manager.wait(job_id, timeout=5)

    status_response = client.get(f"/jobs/{job_id}")
    assert status_response.status_code == 200
    assert status_response.json() == {
        "job_id": job_id,
        "state": "complete",
        "progress": 100,
        "page_count": 3,
        "error": None,
    }

    pages = client.get(f"/jobs/{job_id}/pages").json()
    assert pages["title"] == "The Lighthouse"
    assert [page["number"] for page in pages["pages"]] == [1, 2, 3]
    assert [page["chapter"] for page in pages["pages"]] == [1, 2, 2]

    listing = client.get("/jobs").json()
    assert [job["job_id"] for job in listing] == [job_id]


def test_structure_over_ceiling_is_unprocessable(client: TestClient) -> None:
    oversized = {**STRUCTURE, "chapters": [{"number": 1, "title": "Long", "target_pages": 11}]}

    response = client.post("/jobs", json=oversized)

    assert response.status_code == 422
    assert "ceiling" in response.json()["detail"]
    assert client.get("/jobs").json() == []


def test_structure_without_chapters_is_unprocessable(client: TestClient) -> None:
    response = client.post("/jobs", json={"title": "Empty", "chapters": []})
    assert response.status_code == 422


def test_malformed_structure_is_unprocessable(client: TestClient) -> None:
    response = client.post("/jobs", json={"chapters": [{"number": 0}]})
    assert response.status_code == 422


def test_unknown_job_returns_404(client: TestClient) -> None:
    assert client.get("/jobs/gen_missing").status_code == 404
    assert client.get("/jobs/gen_missing/pages").status_code == 404
    assert client.post("/jobs/gen_missing/cancel").status_code == 404


def test_cancel_running_job(client: TestClient, manager: GenerationJobManager, writer: _Writer) -> None:
    writer.gate.clear()
    job_id = client.post("/jobs", json=STRUCTURE).json()["job_id"]

    response = client.post(f"/jobs/{job_id}/cancel")
    assert response.status_code == 200
    assert response.json() == {"job_id": job_id, "cancelled": True}

    writer.gate.set()
    manager.wait(job_id, timeout=5)
    assert client.get(f"/jobs/{job_id}").json()["state"] == "cancelled"
    assert client.post(f"/jobs/{job_id}/cancel").json()["cancelled"] is False


def test_metrics_endpoint(client: TestClient, manager: GenerationJobManager) -> None:
    job_id = client.post("/jobs", json=STRUCTURE).json()["job_id"]
    manager.wait(job_id, timeout=5)

    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "generation_jobs_completed_total 1" in response.text
    assert "generation_pages_total 3" in response.text


def test_auth_token_is_required_when_enabled(manager: GenerationJobManager) -> None:
    config = AppConfig(
        web=WebConfig(title="Test API", auth=WebAuthConfig(enabled=True, token="s3cret")),
    )
    client = TestClient(create_app(manager, config))

    assert client.get("/health").status_code == 200
    assert client.get("/jobs").status_code == 401
    assert client.get("/jobs", headers={"X-Storyforge-Token": "wrong"}).status_code == 401

    response = client.post("/jobs", json=STRUCTURE, headers={"X-Storyforge-Token": "s3cret"})
    assert response.status_code == 202
    assert client.app.title == "Test API"


@pytest.fixture()
def session_client(manager: GenerationJobManager, stub_llm_config: LLMConfig) -> TestClient:
    generator = StoryGenerator(stub_llm_config, words_per_page=5)
    sessions = SessionRegistry(lambda: WorkflowController(generator, manager))
    return TestClient(create_app(manager, sessions=sessions))


def test_session_walks_every_step_to_a_finished_book(
    session_client: TestClient, manager: GenerationJobManager
) -> None:
    created = session_client.post("/sessions")
    assert created.status_code == 201
    session_id = created.json()["session_id"]
    assert created.json()["step"] == "cover"

    cover = session_client.post(f"/sessions/{session_id}/cover", json={"style": "watercolor", "mood": "Wistful"})
    assert cover.json()["step"] == "intent"

    intent = session_client.post(f"/sessions/{session_id}/intent", json={"intent": "A keeper waits for a ship"})
    assert intent.status_code == 200
    assert intent.json()["step"] == "profile"
    assert intent.json()["profile"]["primary"]

    pitching = session_client.post(f"/sessions/{session_id}/pitches").json()
    assert pitching["step"] == "pitching"
    assert len(pitching["active_pitches"]) == 5

    for _ in range(2):
        first = pitching["active_pitches"][0]["id"]
        pitching = session_client.post(
            f"/sessions/{session_id}/votes", json={"candidate_id": first, "outcome": "approved"}
        ).json()
    assert pitching["approved"] == 2
    assert len(pitching["active_pitches"]) == 5
    assert pitching["word_cloud"]

    structured = session_client.post(f"/sessions/{session_id}/structure").json()
    assert structured["step"] == "structure"
    assert structured["structure"]["chapters"]

    started = session_client.post(f"/sessions/{session_id}/generate")
    assert started.status_code == 202
    job_id = started.json()["job_id"]
    manager.wait(job_id, timeout=5)

    status_payload = session_client.get(f"/sessions/{session_id}/job").json()
    assert status_payload["job_id"] == job_id
    assert status_payload["state"] == "complete"
    assert session_client.get(f"/sessions/{session_id}").json()["job_id"] == job_id


def test_session_errors_map_to_http_codes(session_client: TestClient) -> None:
    assert session_client.get("/sessions/session_missing").status_code == 404
    assert session_client.post("/sessions/session_missing/pitches").status_code == 404
    assert session_client.delete("/sessions/session_missing").status_code == 404

    session_id = session_client.post("/sessions").json()["session_id"]

    out_of_order = session_client.post(f"/sessions/{session_id}/pitches")
    assert out_of_order.status_code == 422
    assert "requires step 'profile'" in out_of_order.json()["detail"]
    assert session_client.get(f"/sessions/{session_id}/job").status_code == 422

    session_client.post(f"/sessions/{session_id}/cover", json={"style": "watercolor", "mood": "Wistful"})
    assert session_client.post(f"/sessions/{session_id}/intent", json={"intent": "   "}).status_code == 422
    session_client.post(f"/sessions/{session_id}/intent", json={"intent": "A keeper waits"})
    pitches = session_client.post(f"/sessions/{session_id}/pitches").json()["active_pitches"]

    unknown_pitch = session_client.post(
        f"/sessions/{session_id}/votes", json={"candidate_id": "pitch_404", "outcome": "approved"}
    )
    assert unknown_pitch.status_code == 404
    bad_outcome = session_client.post(
        f"/sessions/{session_id}/votes", json={"candidate_id": pitches[0]["id"], "outcome": "maybe"}
    )
    assert bad_outcome.status_code == 422

    session_client.post(f"/sessions/{session_id}/votes", json={"candidate_id": pitches[0]["id"], "outcome": "approved"})
    too_few = session_client.post(f"/sessions/{session_id}/structure")
    assert too_few.status_code == 422
    assert "have 1" in too_few.json()["detail"]
    assert session_client.get(f"/sessions/{session_id}").json()["step"] == "pitching"

    assert session_client.delete(f"/sessions/{session_id}").status_code == 204
    assert session_client.get(f"/sessions/{session_id}").status_code == 404


def test_session_routes_are_absent_without_a_registry(client: TestClient) -> None:
    assert client.post("/sessions").status_code == 404


def test_start_job_uses_configured_style(manager: GenerationJobManager, writer: _Writer) -> None:
    contexts: list[GenerationContext] = []
    original = writer.write_chapter

    def _recording(chapter, structure, *, context):
        contexts.append(context)
        return original(chapter, structure, context=context)

    writer.write_chapter = _recording
    config = AppConfig(generation=GenerationConfig(model="stub", style="noir"))
    client = TestClient(create_app(manager, config))

    job_id = client.post("/jobs", json=STRUCTURE).json()["job_id"]
    manager.wait(job_id, timeout=5)

    assert [context.style for context in contexts] == ["noir", "noir"]


def test_scheduling_failure_is_reported(client: TestClient, manager: GenerationJobManager) -> None:
    manager.shutdown()

    response = client.post("/jobs", json=STRUCTURE)

    assert response.status_code == 503
    assert "could not be scheduled" in response.json()["detail"]
    assert client.get("/jobs").json()[0]["state"] == "failed"
