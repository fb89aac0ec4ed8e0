from fastapi.routing import APIRoute
from reservations_api.deps import get_current_actor
from reservations_api.routers import availability, reservations


def test_availability_router_requires_bearer_token() -> None:
    # Router-level dependency must include Bearer token verification
    assert any(dep.dependency == get_current_actor for dep in availability.router.dependencies)

    # Each route should inherit the auth dependency
    for route in availability.router.routes:
        if not isinstance(route, APIRoute):
            continue
        assert any(dep.call == get_current_actor for dep in route.dependant.dependencies)


def test_every_reservation_route_resolves_the_actor() -> None:
    for route in reservations.router.routes:
        if not isinstance(route, APIRoute):
            continue
        assert any(dep.call == get_current_actor for dep in route.dependant.dependencies), route.path
