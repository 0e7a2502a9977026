from __future__ import annotations

import logging

from fastapi.testclient import TestClient
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import AppHTTPException, ErrorNormalizer, error_payload
from app.core.logging import StructuredLogger


def _error_records(caplog):
    return [r for r in caplog.records if r.name == "app" and r.levelno >= logging.ERROR]


def test_error_payload_shape():
    payload = error_payload(code="X", message="m", status=400, request_id="rid")
    assert payload["success"] is False
    assert payload["error"]["code"] == "X"
    assert payload["error"]["status"] == 400
    assert payload["error"]["request_id"] == "rid"
    assert "details" not in payload["error"]


def test_normalize_maps_known_shapes():
    normalizer = ErrorNormalizer(StructuredLogger("test.errors"))

    assert normalizer.normalize(AppHTTPException(409, "CONFLICT", "Conflit", {"id": 1})) == (
        409,
        "CONFLICT",
        "Conflit",
        {"id": 1},
    )
    assert normalizer.normalize(StarletteHTTPException(404, "Not Found")) == (404, "NOT_FOUND", "Not Found", None)
    assert normalizer.normalize(StarletteHTTPException(405, "Method Not Allowed"))[1] == "HTTP_ERROR"
    assert normalizer.normalize(KeyError("x")) == (500, "INTERNAL_ERROR", "Erreur interne du serveur", None)


def test_unhandled_error_becomes_generic_500(make_app, caplog):
    client = TestClient(make_app())

    r = client.get("/api/v1/boom")
    assert r.status_code == 500
    body = r.json()
    assert body["success"] is False
    assert body["error"]["code"] == "INTERNAL_ERROR"
    assert body["error"]["message"] == "Erreur interne du serveur"
    assert "kaboom" not in r.text

    records = _error_records(caplog)
    assert len(records) == 1
    assert "RuntimeError: kaboom secret" in records[0].getMessage()
    assert records[0].exc_info is not None


def test_application_error_keeps_code_and_details(make_app, caplog):
    client = TestClient(make_app())

    r = client.get("/api/v1/conflict")
    assert r.status_code == 409
    error = r.json()["error"]
    assert error["code"] == "CONFLICT"
    assert error["message"] == "Conflit"
    assert error["details"] == {"id": 1}
    assert len(_error_records(caplog)) == 1


def test_not_found_is_normalized(make_app, caplog):
    client = TestClient(make_app())

    r = client.get("/api/v1/nope")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "NOT_FOUND"
    assert len(_error_records(caplog)) == 1


def test_validation_error_raised_in_handler_is_422(make_app, caplog):
    client = TestClient(make_app())

    r = client.get("/api/v1/invalid-data")
    assert r.status_code == 422
    error = r.json()["error"]
    assert error["code"] == "VALIDATION_ERROR"
    assert error["details"][0]["loc"] == ["quantity"]
    assert len(_error_records(caplog)) == 1


def test_production_config_hides_details(make_app, caplog):
    client = TestClient(make_app(ENV="prod"))

    r = client.get("/api/v1/conflict")
    assert r.status_code == 409
    assert "details" not in r.json()["error"]

    # Les détails restent disponibles côté logs
    records = _error_records(caplog)
    assert len(records) == 1
    assert records[0].detail == {"id": 1}


def test_deliberate_5xx_is_logged_without_traceback(make_app, caplog):
    client = TestClient(make_app())

    # Base jamais connectée (pas de lifespan) : AppHTTPException 503 volontaire
    r = client.get("/api/v1/db")
    assert r.status_code == 503

    records = _error_records(caplog)
    assert len(records) == 1
    assert records[0].getMessage().startswith("503 DATABASE_UNAVAILABLE")
    assert records[0].exc_info is None
