"""Unit tests for AppError hierarchy and the exception handlers."""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from errors import (
    AppError,
    AuthenticationError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    register_error_handlers,
)


class TestAppErrorSubclasses:
    def test_validation_error(self):
        e = ValidationError("bad input")
        assert e.status_code == 400
        assert e.error_code == "validation_error"
        assert e.message == "bad input"

    def test_authentication_error(self):
        e = AuthenticationError("not authenticated")
        assert e.status_code == 401
        assert e.error_code == "authentication_error"

    def test_forbidden_error(self):
        e = ForbiddenError("not allowed")
        assert e.status_code == 403
        assert e.error_code == "forbidden"

    def test_not_found_error(self):
        e = NotFoundError("resource missing")
        assert e.status_code == 404
        assert e.error_code == "not_found"

    def test_all_inherit_app_error(self):
        for cls in (ValidationError, AuthenticationError, ForbiddenError, NotFoundError):
            assert issubclass(cls, AppError)


class TestAppErrorToDict:
    def test_basic(self):
        e = NotFoundError("link not found")
        assert e.to_dict() == {"error": "link not found", "code": "not_found"}

    @pytest.mark.parametrize(
        "kwargs, key, value",
        [
            ({"field": "link_id"}, "field", "link_id"),
            ({"details": {"max": 10, "received": 11}}, "details", {"max": 10, "received": 11}),
        ],
        ids=["with_field", "with_details"],
    )
    def test_optional_key_present(self, kwargs, key, value):
        e = ValidationError("invalid", **kwargs)
        assert e.to_dict()[key] == value

    def test_no_optional_keys_when_absent(self):
        d = NotFoundError("missing").to_dict()
        assert "field" not in d
        assert "details" not in d


class TestErrorHandlers:
    @pytest.fixture
    def client(self):
        app = FastAPI()
        register_error_handlers(app)

        @app.get("/forbidden")
        async def forbidden():
            raise ForbiddenError("no access", field="link_id")

        @app.get("/boom")
        async def boom():
            raise RuntimeError("unexpected")

        with TestClient(app, raise_server_exceptions=False) as c:
            yield c

    def test_app_error_rendered(self, client):
        resp = client.get("/forbidden")
        assert resp.status_code == 403
        assert resp.json() == {"error": "no access", "code": "forbidden", "field": "link_id"}

    def test_unhandled_exception_is_500(self, client):
        resp = client.get("/boom")
        assert resp.status_code == 500
        assert resp.json()["code"] == "internal_error"
