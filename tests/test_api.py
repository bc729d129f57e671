"""HTTP tests for app/api/v1/podcast.py through FastAPI's TestClient."""

import json

import pytest
from fastapi.testclient import TestClient

from app.core.rate_limit import SCOPE_DEFAULT, SCOPE_GENERATE, RateLimiter, get_rate_limiter
from app.main import app
from app.schemas.podcast import JobStatus
from app.services.job_store import PodcastJobStore
from app.services.podcast_service import PodcastService, get_podcast_service

from conftest import VOICE_MAP, FakeCompletion, FakeTTS

BASE = "/api/v1/podcasts"
HEADERS = {"X-User-Id": "user-1"}


@pytest.fixture
def client(db, service):
    app.dependency_overrides[get_podcast_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def create_job(client):
    response = client.post(f"{BASE}/", json={"sourceContent": "Sleep helps memory.", "targetDuration": "short"}, headers=HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


def test_identity_header_is_required(client):
    assert client.get(f"{BASE}/").status_code == 401


def test_create_job_returns_complete_script(client):
    job = create_job(client)
    assert job["status"] == "complete"
    assert job["progress"] == 100
    assert job["userId"] == "user-1"
    assert job["script"]["title"] == "Why Sleep Matters"
    assert job["options"]["hostNames"] == {"host1": "Alex", "host2": "Jamie"}
    assert job["audioUrl"] is None


def test_invalid_options_are_422(client):
    response = client.post(f"{BASE}/", json={"sourceContent": "x", "tone": "angry"}, headers=HEADERS)
    assert response.status_code == 422


def test_llm_failure_is_502_and_job_is_failed(db, storage):
    from app.core.llm import ProviderError
    failing = PodcastService(complete=FakeCompletion(error=ProviderError("openai call failed")), storage=storage)
    app.dependency_overrides[get_podcast_service] = lambda: failing
    try:
        with TestClient(app) as client:
            response = client.post(f"{BASE}/", json={"sourceContent": "Some content"}, headers=HEADERS)
            assert response.status_code == 502
            jobs = client.get(f"{BASE}/", headers=HEADERS).json()["jobs"]
            assert [job["status"] for job in jobs] == ["failed"]
    finally:
        app.dependency_overrides.clear()


def test_list_get_and_filter(client):
    first = create_job(client)
    second = create_job(client)
    listed = client.get(f"{BASE}/", headers=HEADERS).json()["jobs"]
    assert [job["id"] for job in listed] == [second["id"], first["id"]]
    assert client.get(f"{BASE}/?limit=1", headers=HEADERS).json()["jobs"][0]["id"] == second["id"]
    assert client.get(f"{BASE}/?status=failed", headers=HEADERS).json()["jobs"] == []
    assert client.get(f"{BASE}/?limit=101", headers=HEADERS).status_code == 422

    fetched = client.get(f"{BASE}/{first['id']}", headers=HEADERS)
    assert fetched.status_code == 200
    assert fetched.json()["id"] == first["id"]
    assert client.get(f"{BASE}/{first['id']}", headers={"X-User-Id": "user-2"}).status_code == 404


def test_export_formats(client):
    job = create_job(client)
    as_json = client.get(f"{BASE}/{job['id']}?export=json", headers=HEADERS)
    assert as_json.headers["content-type"].startswith("application/json")
    assert json.loads(as_json.text)["title"] == "Why Sleep Matters"
    assert as_json.headers["content-disposition"] == f'attachment; filename="{job["id"]}.json"'

    as_txt = client.get(f"{BASE}/{job['id']}?export=txt", headers=HEADERS)
    assert as_txt.headers["content-type"].startswith("text/plain")
    assert "Alex: Welcome back to the show." in as_txt.text

    as_srt = client.get(f"{BASE}/{job['id']}?export=srt", headers=HEADERS)
    assert as_srt.text.startswith("1\n")

    assert client.get(f"{BASE}/{job['id']}?export=pdf", headers=HEADERS).status_code == 400


def test_generate_audio_and_delete(client, storage):
    job = create_job(client)
    response = client.post(f"{BASE}/{job['id']}/audio", json={"voiceMap": VOICE_MAP}, headers=HEADERS)
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["status"] == "complete"
    assert body["duration"] == 1
    path = storage.get_podcast_path(body["audioUrl"].split("/")[-1])
    assert path.exists()

    deleted = client.delete(f"{BASE}/{job['id']}", headers=HEADERS)
    assert deleted.status_code == 200
    assert not path.exists()
    assert client.get(f"{BASE}/{job['id']}", headers=HEADERS).status_code == 404
    assert client.delete(f"{BASE}/{job['id']}", headers=HEADERS).status_code == 404


def test_audio_missing_voice_is_400(client):
    job = create_job(client)
    response = client.post(f"{BASE}/{job['id']}/audio", json={"voiceMap": {"Alex": "a"}}, headers=HEADERS)
    assert response.status_code == 400
    assert "Jamie" in response.json()["detail"]


def test_audio_while_in_flight_is_409(client, db):
    job = create_job(client)
    PodcastJobStore(db).update_fields(job["id"], {"status": JobStatus.GENERATING_AUDIO, "progress": 42})
    response = client.post(f"{BASE}/{job['id']}/audio", json={"voiceMap": VOICE_MAP}, headers=HEADERS)
    assert response.status_code == 409
    after = client.get(f"{BASE}/{job['id']}", headers=HEADERS).json()
    assert (after["status"], after["progress"]) == ("generating_audio", 42)


def test_audio_for_unknown_job_is_404(client):
    response = client.post(f"{BASE}/podcast_missing/audio", json={"voiceMap": VOICE_MAP}, headers=HEADERS)
    assert response.status_code == 404


def test_tts_failure_is_502(db, storage):
    failing = PodcastService(
        complete=FakeCompletion(),
        tts_factory=lambda provider: FakeTTS(fail_for_voice="voice-alex"),
        storage=storage,
        audio_format="wav",
    )
    app.dependency_overrides[get_podcast_service] = lambda: failing
    try:
        with TestClient(app) as client:
            job = create_job(client)
            response = client.post(f"{BASE}/{job['id']}/audio", json={"voiceMap": VOICE_MAP}, headers=HEADERS)
            assert response.status_code == 502
            after = client.get(f"{BASE}/{job['id']}", headers=HEADERS).json()
            assert after["status"] == "failed"
            assert after["script"] is not None
    finally:
        app.dependency_overrides.clear()


def test_parse_script_endpoint(client):
    response = client.post(f"{BASE}/scripts/parse", json={"script": "Alex: Hello.\nJamie: Hi there!"})
    assert response.status_code == 200
    body = response.json()
    assert body["mode"] == "podcast"
    assert body["speakers"] == ["Alex", "Jamie"]
    assert body["estimatedDurationFormatted"] == "0:02"


def test_parse_script_with_forced_single_mode(client):
    response = client.post(
        f"{BASE}/scripts/parse",
        json={"script": "Alex: Hello.\nJamie: Hi there!", "mode": "single", "speaker1Name": "Host"},
    )
    body = response.json()
    assert body["mode"] == "single"
    assert body["speakers"] == ["Host"]
    assert body["totalSegments"] == 1


def test_script_audio_endpoint_returns_audio(client):
    payload = {
        "segments": [{"speaker": "Alex", "text": "Hi."}, {"speaker": "Jamie", "text": "Hello."}],
        "voiceMap": VOICE_MAP,
        "title": "demo",
    }
    response = client.post(f"{BASE}/scripts/audio", json=payload, headers=HEADERS)
    assert response.status_code == 200
    assert response.headers["content-type"] == "audio/wav"
    assert response.headers["content-disposition"] == 'attachment; filename="demo.wav"'
    assert response.content[:4] == b"RIFF"


def test_script_audio_missing_voice_is_400(client):
    payload = {"segments": [{"speaker": "Sam", "text": "Hi."}], "voiceMap": VOICE_MAP}
    assert client.post(f"{BASE}/scripts/audio", json=payload, headers=HEADERS).status_code == 400


def test_audio_with_blank_edited_segment_is_400(client):
    job = create_job(client)
    script = {"title": "Edited", "segments": [{"speaker": "Alex", "text": "Hello there."}, {"speaker": "Jamie", "text": "   "}]}
    response = client.post(f"{BASE}/{job['id']}/audio", json={"voiceMap": VOICE_MAP, "script": script}, headers=HEADERS)
    assert response.status_code == 400
    after = client.get(f"{BASE}/{job['id']}", headers=HEADERS).json()
    assert after["status"] == "complete"
    assert after["script"]["title"] == "Why Sleep Matters"


@pytest.fixture
def tight_limits(client):
    limiter = RateLimiter({SCOPE_GENERATE: 1, SCOPE_DEFAULT: 1}, window_seconds=60)
    app.dependency_overrides[get_rate_limiter] = lambda: limiter
    return limiter


def test_script_generation_over_the_limit_is_429(client, tight_limits):
    first = create_job(client)
    response = client.post(f"{BASE}/", json={"sourceContent": "More content."}, headers=HEADERS)
    assert response.status_code == 429
    assert int(response.headers["retry-after"]) >= 1
    assert response.headers["x-ratelimit-remaining"] == "0"
    # the refused request created no job
    assert [job["id"] for job in client.get(f"{BASE}/", headers=HEADERS).json()["jobs"]] == [first["id"]]
    # other users keep their own allowance
    assert client.post(f"{BASE}/", json={"sourceContent": "x"}, headers={"X-User-Id": "user-2"}).status_code == 201


def test_audio_over_the_limit_is_429(client, tight_limits, fake_tts):
    job = create_job(client)
    assert client.post(f"{BASE}/{job['id']}/audio", json={"voiceMap": VOICE_MAP}, headers=HEADERS).status_code == 200
    calls = len(fake_tts.calls)
    response = client.post(f"{BASE}/{job['id']}/audio", json={"voiceMap": VOICE_MAP}, headers=HEADERS)
    assert response.status_code == 429
    assert len(fake_tts.calls) == calls


def test_script_audio_over_the_limit_is_429(client, tight_limits):
    payload = {"segments": [{"speaker": "Alex", "text": "Hi."}], "voiceMap": VOICE_MAP}
    assert client.post(f"{BASE}/scripts/audio", json=payload, headers=HEADERS).status_code == 200
    assert client.post(f"{BASE}/scripts/audio", json=payload, headers=HEADERS).status_code == 429


def test_rate_limit_headers_on_admitted_request(client):
    response = client.post(f"{BASE}/", json={"sourceContent": "Sleep helps memory."}, headers=HEADERS)
    assert response.headers["x-ratelimit-limit"] == "10"
    assert response.headers["x-ratelimit-remaining"] == "9"
