# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_aegis

import io
from pathlib import Path
from typing import Generator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from wont_let_you_see.exceptions import CustomPatternError
from wont_let_you_see.server import app
from wont_let_you_see.utils.logger import add_sink, logger


@pytest.fixture
def client(isolated_env: Path) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "protected"
    assert response.json()["patterns"] > 0


def test_health_not_initialized(client: TestClient) -> None:
    client.app.state.masker = None  # type: ignore[attr-defined]

    response = client.get("/health")

    assert response.status_code == 503
    assert response.json()["detail"] == "Unhealthy: masker not initialized"


def test_mask_and_unmask(client: TestClient) -> None:
    response = client.post("/mask", json={"session_id": "api", "text": "ami-0123456789abcdef0 10.0.0.7"})

    assert response.status_code == 200
    masked = response.json()["text"]
    assert masked == "#(ami-1) #(ipv4-1)"

    response = client.post("/unmask", json={"session_id": "api", "text": masked})

    assert response.status_code == 200
    assert response.json()["text"] == "ami-0123456789abcdef0 10.0.0.7"


def test_mask_failure_returns_500_without_details(client: TestClient) -> None:
    masker = client.app.state.masker  # type: ignore[attr-defined]
    with patch.object(masker, "mask", side_effect=CustomPatternError("regex:secret-(")):
        response = client.post("/mask", json={"session_id": "api", "text": "secret-1"})

    assert response.status_code == 500
    assert response.json()["detail"] == "Masking failed"


def test_unmask_failure_returns_500(client: TestClient) -> None:
    masker = client.app.state.masker  # type: ignore[attr-defined]
    with patch.object(masker, "unmask", side_effect=OSError("denied")):
        response = client.post("/unmask", json={"session_id": "api", "text": "#(vpc-1)"})

    assert response.status_code == 500
    assert response.json()["detail"] == "Unmasking failed"


def test_invalid_session_id_returns_500(client: TestClient) -> None:
    response = client.post("/mask", json={"session_id": "../escape", "text": "vpc-0123456789abcdef0"})
    assert response.status_code == 500


def test_request_validation(client: TestClient) -> None:
    response = client.post("/mask", json={"text": "missing session"})
    assert response.status_code == 422


def test_failure_log_omits_request_text(client: TestClient) -> None:
    secret = "SECRET-vpc-0123456789abcdef0"
    buffer = io.StringIO()
    handler_id = add_sink(buffer, level="ERROR")
    masker = client.app.state.masker  # type: ignore[attr-defined]
    try:
        with patch.object(masker, "mask", side_effect=RuntimeError("engine down")):
            response = client.post("/mask", json={"session_id": "api", "text": secret})
    finally:
        logger.remove(handler_id)

    assert response.status_code == 500
    output = buffer.getvalue()
    assert "Mask request failed" in output
    assert "engine down" in output
    assert secret not in output
