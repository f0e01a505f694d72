import json

import pytest
from fastapi.testclient import TestClient

from viralize.server.app import create_app, safe_job_id

MANIFEST = {
    "width": 90,
    "height": 160,
    "fps": 10,
    "segments": [{"input": 0, "frames": 10}],
    "concat": [0],
    "audio": 1,
}


@pytest.fixture
def client(small_settings):
    return TestClient(create_app(small_settings))


def test_safe_job_id():
    assert safe_job_id("abc-123_X") == "abc-123_X"
    assert safe_job_id("../../etc/passwd") == "etcpasswd"
    assert len(safe_job_id("a" * 100)) == 64
    with pytest.raises(ValueError):
        safe_job_id("../")
    with pytest.raises(ValueError):
        safe_job_id(None)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["ok"] is True


def test_missing_job_id_is_rejected(client):
    response = client.post("/api/render-job", data={"manifest": json.dumps(MANIFEST)})
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "jobId requerido"}


def test_invalid_manifest_is_rejected(client):
    response = client.post("/api/render-job", data={"jobId": "j1", "manifest": "{no json"})
    assert response.status_code == 400
    assert response.json()["success"] is False

    bad = dict(MANIFEST, audio=0)
    response = client.post("/api/render-job", data={"jobId": "j1", "manifest": json.dumps(bad)})
    assert response.status_code == 400
    assert "Manifest inválido" in response.json()["error"]


def test_missing_and_empty_files_are_rejected(client):
    data = {"jobId": "j1", "manifest": json.dumps(MANIFEST)}
    response = client.post(
        "/api/render-job",
        data=data,
        files={"frame_0.jpg": ("frame_0.jpg", b"\xff\xd8", "image/jpeg")},
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Falta el archivo audio.wav"

    response = client.post(
        "/api/render-job",
        data=data,
        files={
            "frame_0.jpg": ("frame_0.jpg", b"", "image/jpeg"),
            "audio.wav": ("audio.wav", b"RIFF", "audio/wav"),
        },
    )
    assert response.status_code == 400
    assert response.json()["error"] == "Archivo vacío: frame_0.jpg"


def test_unknown_videos_are_not_served(client, small_settings):
    assert client.get("/videos/video_nope.mp4").status_code == 404
    assert client.get("/videos/config.yaml").status_code == 404
