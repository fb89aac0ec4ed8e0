from typing import AsyncIterator

import httpx
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from .config import Settings, get_settings
from .database import async_session
from .domain.entities import Actor
from .domain.errors import UpstreamServiceError
from .domain.repositories import ActivityCatalog, UserDirectory
from .domain.services import DatePolicy
from .infrastructure.clients import HttpActivityCatalog, HttpUserDirectory
from .utils.auth import decode_access_token, parse_bearer
from .utils.time import booking_zone


async def get_session() -> AsyncIterator[AsyncSession]:
    async with async_session() as session:
        yield session


async def get_http_client(settings: Settings = Depends(get_settings)) -> AsyncIterator[httpx.AsyncClient]:
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        yield client


async def get_activity_catalog(
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> ActivityCatalog:
    return HttpActivityCatalog(client, settings.activities_api_url)


async def get_user_directory(
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_settings),
) -> UserDirectory:
    return HttpUserDirectory(client, settings.users_api_url)


def get_date_policy(settings: Settings = Depends(get_settings)) -> DatePolicy:
    return DatePolicy(
        tz=booking_zone(settings.booking_timezone),
        cutoff=settings.date_cutoff,
        grace_minutes=settings.date_grace_minutes,
    )


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_actor(
    authorization: str | None = Header(default=None),
    users: UserDirectory = Depends(get_user_directory),
) -> Actor:
    token = parse_bearer(authorization)
    if token is None:
        raise _unauthorized("Bearer token required")
    settings = get_settings()
    try:
        user_id = decode_access_token(token, secret=settings.auth_secret, algorithms=[settings.auth_algorithm])
    except ValueError as exc:
        raise _unauthorized("invalid token") from exc

    try:
        actor = await users.resolve_actor(user_id)
    except UpstreamServiceError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="users service unavailable") from exc
    if actor is None:
        raise _unauthorized("user not found")
    return actor
