"""Unit tests for artifact download and placement."""

from datetime import datetime
from unittest.mock import MagicMock
import os

import pytest
import requests

from imagehub.image.errors import ArtifactPersistError
from imagehub.image.storage import ArtifactStore


MOMENT = datetime(2026, 2, 20, 21, 56, 54)


def test_artifact_path_scheme():
    store = ArtifactStore("/data/out", http=MagicMock())
    assert store.artifact_path("siliconflow", MOMENT) == "/data/out/2026-02-20/siliconflow/215654.png"


def test_persist_round_trips_bytes(tmp_path, make_response):
    payload = b"\x89PNG\r\n\x1a\nfake-image-bytes"
    http = MagicMock()
    http.get.return_value = make_response(content=payload)
    store = ArtifactStore(str(tmp_path), timeout=7, http=http)

    path = store.persist("modelscope", "https://cdn/x.png", MOMENT)

    assert path == str(tmp_path / "2026-02-20" / "modelscope" / "215654.png")
    with open(path, "rb") as f:
        assert f.read() == payload
    http.get.assert_called_once_with("https://cdn/x.png", timeout=7)
    assert os.listdir(os.path.dirname(path)) == ["215654.png"]


def test_persist_uses_clock_when_no_moment(tmp_path, make_response):
    http = MagicMock()
    http.get.return_value = make_response(content=b"img")
    store = ArtifactStore(str(tmp_path), http=http, clock=lambda: MOMENT)

    path = store.persist("openai", "https://cdn/y.png")

    assert path.endswith(os.path.join("2026-02-20", "openai", "215654.png"))


def test_existing_directory_is_fine(tmp_path, make_response):
    (tmp_path / "2026-02-20" / "aliyun").mkdir(parents=True)
    http = MagicMock()
    http.get.return_value = make_response(content=b"img")

    path = ArtifactStore(str(tmp_path), http=http).persist("aliyun", "u", MOMENT)

    assert os.path.exists(path)


def test_empty_body_leaves_no_file(tmp_path, make_response):
    http = MagicMock()
    http.get.return_value = make_response(content=b"")
    store = ArtifactStore(str(tmp_path), http=http)

    with pytest.raises(ArtifactPersistError, match="empty body"):
        store.persist("aliyun", "u", MOMENT)
    assert not os.path.exists(store.artifact_path("aliyun", MOMENT))


def test_http_error_is_persist_failure(tmp_path, make_response):
    http = MagicMock()
    http.get.return_value = make_response(status_code=404, content=b"not found")

    with pytest.raises(ArtifactPersistError, match="HTTP 404"):
        ArtifactStore(str(tmp_path), http=http).persist("aliyun", "u", MOMENT)


def test_transport_error_is_persist_failure(tmp_path):
    http = MagicMock()
    http.get.side_effect = requests.exceptions.ReadTimeout("slow")
    store = ArtifactStore(str(tmp_path), http=http)

    with pytest.raises(ArtifactPersistError):
        store.persist("aliyun", "u", MOMENT)
    assert not os.path.exists(store.artifact_path("aliyun", MOMENT))
