"""Tests for RequestIDMiddleware."""

from uuid import UUID

import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.testclient import TestClient

from api.middleware import RequestIDMiddleware


@pytest.fixture
def app():
    """Minimal FastAPI app with RequestIDMiddleware."""
    app = FastAPI()
    app.add_middleware(RequestIDMiddleware)

    @app.get("/test")
    async def test_endpoint(request: Request):
        return JSONResponse({"request_id": request.state.request_id})

    return app


@pytest.fixture
def client(app):
    return TestClient(app)


class TestRequestIDMiddleware:
    """Tests for RequestIDMiddleware."""

    def test_generated_id_is_uuid(self, client):
        response = client.get("/test")

        UUID(response.headers["X-Request-ID"])
        assert response.json()["request_id"] == response.headers["X-Request-ID"]

    def test_each_request_gets_unique_id(self, client):
        r1 = client.get("/test")
        r2 = client.get("/test")

        assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]

    def test_incoming_id_reused(self, client):
        response = client.get("/test", headers={"X-Request-ID": "trace-abc.123"})

        assert response.headers["X-Request-ID"] == "trace-abc.123"
        assert response.json()["request_id"] == "trace-abc.123"

    @pytest.mark.parametrize("incoming", ["has spaces", "x" * 129, "semi;colon"])
    def test_malformed_incoming_id_replaced(self, client, incoming):
        response = client.get("/test", headers={"X-Request-ID": incoming})

        UUID(response.headers["X-Request-ID"])
