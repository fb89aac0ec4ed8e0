import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from reservations_api.main import request_id_middleware
from reservations_api.utils.request_id import (
    REQUEST_ID_HEADER,
    generate_request_id,
    get_request_id,
    reset_request_id,
    set_request_id,
)


def _echo_app() -> FastAPI:
    app = FastAPI()

    @app.get("/echo")
    async def echo() -> dict[str, str | None]:
        return {"request_id": get_request_id()}

    app.middleware("http")(request_id_middleware)
    return app


async def _call(headers: dict[str, str] | None = None) -> tuple[str, str | None]:
    transport = ASGITransport(app=_echo_app())
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.get("/echo", headers=headers)
    assert resp.status_code == 200
    return resp.headers[REQUEST_ID_HEADER], resp.json()["request_id"]


def test_set_and_reset_restores_previous_value() -> None:
    outer = set_request_id("outer")
    inner = set_request_id("inner")
    assert get_request_id() == "inner"
    reset_request_id(inner)
    assert get_request_id() == "outer"
    reset_request_id(outer)
    assert get_request_id() is None


def test_generated_ids_are_unique_hex() -> None:
    first, second = generate_request_id(), generate_request_id()
    assert first != second
    int(first, 16)


@pytest.mark.asyncio
async def test_middleware_generates_id_when_absent() -> None:
    header, seen = await _call()
    assert header
    assert seen == header


@pytest.mark.asyncio
async def test_middleware_propagates_incoming_id() -> None:
    header, seen = await _call({REQUEST_ID_HEADER: "req-custom-123"})
    assert header == seen == "req-custom-123"
    assert get_request_id() is None
