from fastapi import HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

from notes_backend.api.errors import (
    AuthenticationFailed,
    Conflict,
    EmptyFile,
    FileTooLarge,
    InvalidPath,
    IOFailure,
    NotFound,
    UnsupportedType,
    ValidationFailed,
    error_response,
)
from notes_backend.api.main import app
from notes_backend.api.validation import FieldError


def test_taxonomy_status_codes():
    expected = {
        EmptyFile: (400, "empty_file"),
        UnsupportedType: (400, "unsupported_type"),
        InvalidPath: (400, "invalid_path"),
        FileTooLarge: (413, "file_too_large"),
        AuthenticationFailed: (401, "unauthorized"),
        NotFound: (404, "not_found"),
        Conflict: (409, "conflict"),
        IOFailure: (500, "io_failure"),
    }
    for exc_type, (status_code, category) in expected.items():
        code, payload = error_response(exc_type())
        assert code == status_code
        assert payload["error"] == category
        assert payload["message"]


def test_not_found_message_is_generic():
    _, owned_elsewhere = error_response(NotFound("Note 7 belongs to bob"))
    _, missing = error_response(NotFound("Attachment not found"))
    assert owned_elsewhere == missing
    assert "bob" not in owned_elsewhere["message"]


def test_io_failure_hides_details():
    code, payload = error_response(IOFailure("/var/data/attachments/abc.pdf: permission denied"))
    assert code == 500
    assert "/var/data" not in payload["message"]


def test_input_errors_keep_their_message():
    code, payload = error_response(UnsupportedType("Only image files (JPEG, PNG, GIF, WebP) are allowed"))
    assert code == 400
    assert payload["message"] == "Only image files (JPEG, PNG, GIF, WebP) are allowed"


def test_validation_failed_lists_fields():
    code, payload = error_response(ValidationFailed([FieldError("title", "Title is required")]))
    assert code == 400
    assert payload["fields"] == [{"field": "title", "message": "Title is required"}]


def test_request_validation_error_maps_to_400():
    exc = RequestValidationError([{"loc": ("body", "title"), "msg": "Input should be a valid string", "type": "string_type"}])
    code, payload = error_response(exc)
    assert code == 400
    assert payload["error"] == "validation_error"
    assert payload["fields"] == [{"field": "title", "message": "Input should be a valid string"}]


def test_http_exception_and_unexpected_errors():
    code, payload = error_response(HTTPException(status_code=401, detail="Could not validate credentials."))
    assert (code, payload["error"]) == (401, "unauthorized")

    code, payload = error_response(RuntimeError("database password is hunter2"))
    assert code == 500
    assert payload["error"] == "internal_error"
    assert "hunter2" not in payload["message"]


def test_unexpected_error_response():
    def explode():
        raise RuntimeError("boom at /srv/secret")

    app.add_api_route("/boom", explode)
    try:
        with TestClient(app, raise_server_exceptions=False) as raw_client:
            r = raw_client.get("/boom")
    finally:
        app.router.routes = [route for route in app.router.routes if getattr(route, "path", None) != "/boom"]
    assert r.status_code == 500
    assert r.json()["error"] == "internal_error"
    assert "/srv/secret" not in r.text
