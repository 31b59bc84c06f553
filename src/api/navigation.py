"""Navigation menu endpoint for the application shell."""

from fastapi import APIRouter, Depends, Query

from api.auth import get_current_user
from api.schemas import MenuResponse
from config.settings import get_settings
from db import User
from navigation.menu import render_menu

router = APIRouter(prefix="/navigation", tags=["navigation"])


@router.get("/menu", response_model=MenuResponse)
async def get_menu(
    path: str = Query("/", description="Current page path, used to highlight the active item"),
    current_user: User = Depends(get_current_user)
):
    """Top menu entries the current user may see."""
    return {
        "items": render_menu(
            path,
            current_user.role.value,
            billing_enabled=get_settings().is_billing_enabled,
        )
    }
