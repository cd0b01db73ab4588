"""API routers for the mutual aid engine."""
from fastapi import APIRouter

from . import admin, apikeys, bans, health, help, user_packages, users


def get_api_router() -> APIRouter:
    """Return the root API router."""

    api_router = APIRouter()
    api_router.include_router(health.router)
    api_router.include_router(users.router)
    api_router.include_router(apikeys.router)
    api_router.include_router(help.router)
    api_router.include_router(admin.router)
    api_router.include_router(bans.router)
    api_router.include_router(user_packages.router)
    return api_router
