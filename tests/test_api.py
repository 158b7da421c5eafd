import io
import json
import os
import time

import pytest
from fastapi.testclient import TestClient
from loguru import logger
from PIL import Image

from imagejobs.main import create_app
from imagejobs.services import build_services


def _png_bytes(width=800, height=600):
    buf = io.BytesIO()
    Image.new("RGB", (width, height), (10, 120, 200)).save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def idle_client(settings):
    services = build_services(settings)
    with TestClient(create_app(services=services)) as client:
        yield client, services


@pytest.fixture
def live_client(settings):
    live = settings.model_copy(update={"start_worker": True})
    services = build_services(live)
    with TestClient(create_app(services=services)) as client:
        yield client, services


def _upload(client, owner="user-1", data=None, content=None, filename="photo.png", mime="image/png"):
    form = {"ownerId": owner} if owner is not None else {}
    form.update(data or {})
    files = {"image": (filename, content if content is not None else _png_bytes(), mime)}
    return client.post("/api/v1/jobs", data=form, files=files)


def test_create_job_returns_201(idle_client):
    client, services = idle_client
    resp = _upload(client, data={"options": json.dumps({"width": 100, "height": 100})})

    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "processing"
    assert body["originalFilename"] == "photo.png"

    status = client.get(f"/api/v1/jobs/{body['jobId']}").json()
    assert status["progress"] == 0
    assert status["options"] == {"width": 100, "height": 100, "quality": 80}
    assert status["queueInfo"] == "waiting"
    assert status["ownerId"] == "user-1"


def test_form_fields_override_options_json(idle_client):
    client, _ = idle_client
    resp = _upload(client, data={"options": json.dumps({"width": 100}), "width": "240", "preset": "medium"})
    status = client.get(f"/api/v1/jobs/{resp.json()['jobId']}").json()
    assert status["options"]["width"] == 240
    assert status["options"]["height"] == 300


def test_small_image_rejected_and_upload_removed(idle_client, settings):
    client, services = idle_client
    resp = _upload(client, content=_png_bytes(50, 50))

    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid image", "status": 400}
    assert os.listdir(os.path.join(settings.temp_dir, "uploads")) == []
    assert client.get("/api/v1/users/user-1/jobs").json()["pagination"]["total"] == 0


def test_missing_owner_rejected(idle_client):
    client, _ = idle_client
    resp = _upload(client, owner=None)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Missing required fields"


def test_missing_file_rejected(idle_client):
    client, _ = idle_client
    resp = client.post("/api/v1/jobs", data={"ownerId": "user-1"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "No file uploaded"


def test_wrong_format_rejected(idle_client):
    client, _ = idle_client
    resp = _upload(client, content=b"%PDF-1.4", filename="doc.pdf", mime="application/pdf")
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("Invalid file format")


def test_oversized_upload_rejected(settings):
    small = settings.model_copy(update={"max_file_size": 1024})
    services = build_services(small)
    with TestClient(create_app(services=services)) as client:
        resp = _upload(client, content=b"\x00" * 4096)
    assert resp.status_code == 413
    assert "File too large" in resp.json()["error"]
    assert os.listdir(os.path.join(small.temp_dir, "uploads")) == []


def test_bad_options_json_rejected(idle_client):
    client, _ = idle_client
    resp = _upload(client, data={"options": "{not json"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "options must be a JSON object"


def test_unknown_job_is_404(idle_client):
    client, _ = idle_client
    resp = client.get("/api/v1/jobs/does-not-exist")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Job not found", "status": 404}


def test_user_jobs_pagination(idle_client):
    client, _ = idle_client
    for _ in range(3):
        assert _upload(client).status_code == 201

    body = client.get("/api/v1/users/user-1/jobs", params={"page": 2, "limit": 2}).json()
    assert body["pagination"] == {"page": 2, "limit": 2, "total": 3, "pages": 2}
    assert len(body["jobs"]) == 1

    assert client.get("/api/v1/users/user-1/jobs", params={"limit": 0}).status_code == 400


def test_health(idle_client):
    client, _ = idle_client
    for path in ("/health", "/api/v1/health"):
        body = client.get(path).json()
        assert body["status"] == "healthy"
        assert body["queue"]["name"] == "image-processing"
        assert body["workers"]["running"] is False


def test_end_to_end_thumbnail(live_client):
    client, _ = live_client
    job_id = _upload(client, data={"width": "100", "height": "100"}).json()["jobId"]

    seen = []
    deadline = time.time() + 10
    status = None
    while time.time() < deadline:
        status = client.get(f"/api/v1/jobs/{job_id}").json()
        seen.append(status["progress"])
        if status["status"] == "completed":
            break
        time.sleep(0.05)

    assert status["status"] == "completed"
    assert status["progress"] == 100
    assert status["error"] is None
    assert seen == sorted(seen)
    assert set(seen) <= {0, 30, 70, 100}

    url = status["resultImageUrl"]
    assert url.startswith("http://testserver/uploads/thumbnails/user-1/")
    image = client.get(url.replace("http://testserver", ""))
    assert image.status_code == 200
    with Image.open(io.BytesIO(image.content)) as img:
        assert img.size == (100, 100)


def test_requests_are_logged(idle_client):
    client, _ = idle_client
    records = []
    sink_id = logger.add(lambda m: records.append(m.record), level="DEBUG", format="{message}")
    try:
        client.get("/api/v1/users/user-1/jobs", params={"page": 1, "limit": 5})
    finally:
        logger.remove(sink_id)

    lines = [r for r in records if r["message"] == "GET /api/v1/users/user-1/jobs"]
    assert len(lines) == 1
    assert lines[0]["extra"]["query"] == {"page": "1", "limit": "5"}
