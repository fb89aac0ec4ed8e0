"""HTTP clients for the activities catalog and the users service."""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from ..domain.entities import ActivitySnapshot, Actor
from ..domain.errors import UpstreamServiceError
from ..domain.repositories import ActivityCatalog, UserDirectory

logger = logging.getLogger(__name__)


def _unwrap(payload: Any, key: str) -> dict[str, Any]:
    # The activities service wraps its body as {"activity": {...}}; accept both shapes.
    if isinstance(payload, dict) and isinstance(payload.get(key), dict):
        return payload[key]
    if isinstance(payload, dict):
        return payload
    raise UpstreamServiceError(f"unexpected {key} payload")


def _to_decimal(value: Any) -> Decimal:
    try:
        price = Decimal(str(value if value is not None else 0))
    except InvalidOperation as exc:
        raise UpstreamServiceError(f"invalid activity price: {value!r}") from exc
    if price < 0:
        raise UpstreamServiceError(f"negative activity price: {value!r}")
    return price


def activity_from_payload(payload: Any) -> ActivitySnapshot:
    data = _unwrap(payload, "activity")
    try:
        return ActivitySnapshot(
            id=str(data["id"]),
            name=str(data.get("name", "")),
            max_capacity=int(data["max_capacity"]),
            schedule=tuple(str(s) for s in data.get("schedule") or ()),
            is_active=bool(data.get("is_active", True)),
            price=_to_decimal(data.get("price")),
            duration_minutes=int(data.get("duration") or data.get("duration_minutes") or 60),
        )
    except (KeyError, TypeError, ValueError) as exc:
        raise UpstreamServiceError("malformed activity payload") from exc


class HttpActivityCatalog(ActivityCatalog):
    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def resolve_activity(self, activity_id: str) -> ActivitySnapshot | None:
        url = f"{self.base_url}/activities/{activity_id}"
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as exc:
            logger.warning("activities service unreachable for %s: %s", activity_id, exc)
            raise UpstreamServiceError("activities service unreachable") from exc
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.status_code != httpx.codes.OK:
            logger.error("activities service returned %s for %s", response.status_code, activity_id)
            raise UpstreamServiceError(f"activities service returned status {response.status_code}")
        return activity_from_payload(response.json())


class HttpUserDirectory(UserDirectory):
    def __init__(self, client: httpx.AsyncClient, base_url: str) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def resolve_actor(self, user_id: int) -> Actor | None:
        url = f"{self.base_url}/users/{user_id}"
        try:
            response = await self.client.get(url)
        except httpx.HTTPError as exc:
            logger.warning("users service unreachable for user %s: %s", user_id, exc)
            raise UpstreamServiceError("users service unreachable") from exc
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.status_code != httpx.codes.OK:
            logger.error("users service returned %s for user %s", response.status_code, user_id)
            raise UpstreamServiceError(f"users service returned status {response.status_code}")
        data = _unwrap(response.json(), "user")
        return Actor(
            user_id=int(data.get("id", user_id)),
            role=str(data.get("role") or "user").lower(),
            is_active=bool(data.get("is_active", data.get("active", True))),
        )
