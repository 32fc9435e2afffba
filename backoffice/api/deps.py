"""Request-scoped dependencies shared by the routers."""

from fastapi import Request

from backoffice.registries import Registries


def get_registries(request: Request) -> Registries:
    """Registries built in the app lifespan."""
    return request.app.state.registries
