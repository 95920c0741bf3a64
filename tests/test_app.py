from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient

from arwah.api import app as app_module
from arwah.session import CardSession


@pytest.fixture
def client(template, monkeypatch):
    monkeypatch.setattr(app_module, "session", CardSession(template_loader=lambda: template, preview_delay=0.01))
    with TestClient(app_module.app) as c:
        yield c


def _wait_for_preview(client, previous=None, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        state = client.get("/state").json()
        if state["preview_id"] and state["preview_id"] != previous:
            return state["preview_id"]
        time.sleep(0.02)
    raise AssertionError("preview was not rendered")


def _upload(client, photo_bytes):
    return client.post(
        "/photo",
        files={"file": ("ahmad.png", photo_bytes, "image/png")},
        follow_redirects=False,
    )


def test_index(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert "Arwah" in resp.text
    assert 'type="file"' in resp.text


def test_rejects_non_image(client):
    resp = client.post("/photo", files={"file": ("notes.txt", b"hello", "text/plain")}, follow_redirects=False)
    assert resp.status_code == 400
    assert client.get("/state").json()["has_photo"] is False


def test_upload_and_preview(client, photo_bytes):
    resp = _upload(client, photo_bytes)
    assert resp.status_code == 303
    state = client.get("/state").json()
    assert state["has_photo"] is True
    assert state["photo_name"] == "ahmad.png"
    assert (state["circle_size"], state["feather"]) == (18, 30)

    preview_id = _wait_for_preview(client)
    resp = client.get(f"/outputs/{preview_id}")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert resp.content.startswith(b"\x89PNG")

    resp = client.post("/params", data={"circle_size": "25", "feather": "60", "caption": "Haji Ahmad"})
    assert resp.status_code == 200
    assert isinstance(resp.json()["generation"], int)
    new_id = _wait_for_preview(client, previous=preview_id)
    assert client.get(f"/outputs/{preview_id}").status_code == 404
    assert client.get(f"/outputs/{new_id}").status_code == 200

    state = client.get("/state").json()
    assert (state["circle_size"], state["feather"], state["caption"]) == (25, 60, "Haji Ahmad")


@pytest.mark.parametrize(
    "data",
    [
        {"circle_size": "5", "feather": "30"},
        {"circle_size": "18", "feather": "150"},
        {"circle_size": "31", "feather": "0"},
    ],
)
def test_params_out_of_range(client, data):
    resp = client.post("/params", data=data)
    assert resp.status_code == 400


def test_render_requires_photo(client):
    resp = client.post("/render", follow_redirects=False)
    assert resp.status_code == 400
    assert client.get("/download").status_code == 404


def test_render_download_reset(client, photo_bytes):
    _upload(client, photo_bytes)
    client.post("/params", data={"circle_size": "18", "feather": "30", "caption": "Haji Ahmad"})

    resp = client.post("/render", follow_redirects=False)
    assert resp.status_code == 303
    final_id = client.get("/state").json()["final_id"]
    assert final_id

    resp = client.get("/download")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert 'filename="tahlil-Haji-Ahmad.png"' in resp.headers["content-disposition"]
    assert resp.content == client.get(f"/outputs/{final_id}").content

    page = client.get("/")
    assert f"/outputs/{final_id}" in page.text

    resp = client.post("/reset", follow_redirects=False)
    assert resp.status_code == 303
    state = client.get("/state").json()
    assert state["has_photo"] is False
    assert state["final_id"] is None
    assert state["preview_id"] is None
    assert client.get(f"/outputs/{final_id}").status_code == 404
    assert client.get("/download").status_code == 404
