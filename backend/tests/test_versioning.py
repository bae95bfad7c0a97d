import re

from fastapi.testclient import TestClient

from app.main import app
from app.version import APP_VERSION


def test_fastapi_uses_centralized_app_version() -> None:
    assert app.version == APP_VERSION


def test_root_endpoint_reports_app_version() -> None:
    with TestClient(app) as client:
        response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"service": "mrd-backend", "status": "running", "version": APP_VERSION}


def test_app_version_is_semver() -> None:
    assert re.fullmatch(r"\d+\.\d+\.\d+", APP_VERSION)
