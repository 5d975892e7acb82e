from __future__ import annotations

import base64
import io

import pytest
from PIL import Image

from app import build_request, create_app, parse_words
from cloud_core import QUALITY_LOW, QUALITY_NORMAL, CloudConfig, ValidationError


@pytest.fixture
def client(box_context):
    app = create_app(box_context)
    app.config["TESTING"] = True
    return app.test_client()


def test_cloud_returns_png_and_counts(client):
    response = client.post("/cloud", json={
        "content": [
            {"text": "hello", "size": 20, "color": "#ff0000"},
            {"text": "world", "size": 15, "color": "#00ff00"},
        ],
        "width": 320,
        "height": 200,
        "color": "#ffffff",
    })
    assert response.status_code == 200
    body = response.get_json()
    assert body["placed"] == 2
    assert body["requested"] == 2
    assert [item["text"] for item in body["placements"]] == ["hello", "world"]
    assert body["placements"][0]["color"] == "#ff0000"

    image = Image.open(io.BytesIO(base64.b64decode(body["data"])))
    assert image.size == (320, 200)


def test_cloud_reports_partial_layout(client):
    response = client.post("/cloud", json={
        "content": [{"text": "tiny", "size": 10}, {"text": "x" * 40, "size": 10}],
        "width": 100,
        "height": 50,
    })
    body = response.get_json()
    assert response.status_code == 200
    assert body["placed"] == 1
    assert body["requested"] == 2


@pytest.mark.parametrize("width,height", [(0, 100), (100, 0), (-10, 10)])
def test_cloud_rejects_empty_canvas(client, width, height):
    response = client.post("/cloud", json={"content": [], "width": width, "height": height})
    assert response.status_code == 400
    assert "width and height" in response.get_json()["err"]


def test_cloud_rejects_missing_dimensions(client):
    response = client.post("/cloud", json={"content": [{"text": "a", "size": 10}]})
    assert response.status_code == 400


def test_cloud_rejects_non_json(client):
    response = client.post("/cloud", data="not json", content_type="text/plain")
    assert response.status_code == 400
    assert "err" in response.get_json()


def test_cloud_rejects_unreadable_dimensions(client):
    response = client.post("/cloud", json={"content": [], "width": "wide", "height": 10})
    assert response.status_code == 400
    assert response.get_json()["err"] == "width must be an integer"


def test_index_serves_ui(client):
    response = client.get("/")
    assert response.status_code == 200
    assert b"Pixel Word Cloud" in response.data


def test_parse_words_drops_unusable_sizes():
    words = parse_words({"content": [
        {"text": "keep", "size": "18", "color": "#123456"},
        {"text": "zero", "size": 0},
        {"text": "none"},
        {"text": "nan", "size": "big"},
        "not-a-word",
        {"text": "tint", "size": 9, "color": 42},
    ]})
    assert [(w.text, w.size, w.color) for w in words] == [("keep", 18.0, "#123456"), ("tint", 9.0, "")]


def test_parse_words_requires_list():
    with pytest.raises(ValidationError):
        parse_words({"content": {"text": "a"}})


def test_build_request_uses_config_quality():
    config = CloudConfig(quality=QUALITY_LOW)
    request = build_request({"width": 10, "height": 10}, config)
    assert request.quality == QUALITY_LOW
    assert request.background is None
    assert build_request({"width": 10, "height": 10, "quality": "normal"}, config).quality == QUALITY_NORMAL


@pytest.mark.parametrize("size,requested", [(0.3, 1), (1e9, 1), ("1e9", 1), ("nan", 0), ("inf", 0)])
def test_cloud_degrades_on_unusable_sizes(pillow_context, size, requested):
    app = create_app(pillow_context)
    app.config["TESTING"] = True
    response = app.test_client().post("/cloud", json={
        "content": [{"text": "a", "size": size}, {"text": "ok", "size": 12}],
        "width": 100,
        "height": 80,
    })
    assert response.status_code == 200
    body = response.get_json()
    assert body["requested"] == requested + 1
    assert [item["text"] for item in body["placements"]] == ["ok"]


def test_parse_words_drops_non_finite_sizes():
    words = parse_words({"content": [
        {"text": "nan", "size": "nan"},
        {"text": "inf", "size": "inf"},
        {"text": "neg-inf", "size": float("-inf")},
        {"text": "keep", "size": 0.3},
    ]})
    assert [w.text for w in words] == ["keep"]
