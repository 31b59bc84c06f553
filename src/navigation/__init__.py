"""Role-filtered navigation for the web application shell."""

from navigation.menu import (
    MenuItem,
    MENU_ITEMS,
    visible_menu_items,
    active_menu_item,
    render_menu,
)

__all__ = [
    "MenuItem",
    "MENU_ITEMS",
    "visible_menu_items",
    "active_menu_item",
    "render_menu",
]
