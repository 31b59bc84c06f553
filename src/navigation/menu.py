"""
Top menu of the web application shell.

The menu is a static list filtered by the user's role and by whether
billing is enabled on this deployment.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class MenuItem:
    """One link of the top menu."""
    name: str
    icon: str
    path: str
    roles: Optional[Tuple[str, ...]] = None  # None means every role
    requires_billing: bool = False

    def allows(self, role: Optional[str]) -> bool:
        return self.roles is None or role in self.roles


ADMIN_ROLES = ("ADMIN", "SUPERADMIN")

MENU_ITEMS: List[MenuItem] = [
    MenuItem(name="Analytics", icon="analytics", path="/analytics"),
    MenuItem(name="Launches", icon="launches", path="/launches"),
    MenuItem(name="Settings", icon="settings", path="/settings", roles=ADMIN_ROLES),
    MenuItem(name="Marketplace", icon="marketplace", path="/marketplace"),
    MenuItem(name="Messages", icon="messages", path="/messages"),
    MenuItem(
        name="Billing",
        icon="billing",
        path="/billing",
        roles=ADMIN_ROLES,
        requires_billing=True,
    ),
]


def visible_menu_items(
    role: Optional[str],
    billing_enabled: bool = True,
    items: Optional[List[MenuItem]] = None
) -> List[MenuItem]:
    """Menu items the role may see, in menu order."""
    items = MENU_ITEMS if items is None else items
    return [
        item for item in items
        if not (item.requires_billing and not billing_enabled)
        and item.allows(role)
    ]


def active_menu_item(
    path: str,
    role: Optional[str],
    items: Optional[List[MenuItem]] = None
) -> Optional[MenuItem]:
    """
    The item highlighted for the current path.

    The first item the role may see whose path prefixes the current path
    wins, so at most one item is active. Billing availability does not
    change which item is active.
    """
    for item in visible_menu_items(role, billing_enabled=True, items=items):
        if path.startswith(item.path):
            return item
    return None


def render_menu(path: str, role: Optional[str], billing_enabled: bool = True) -> List[dict]:
    """
    Menu entries for the shell.

    Returns:
        List of {"name", "icon", "path", "active"} dicts
    """
    active = active_menu_item(path, role)
    return [
        {
            "name": item.name,
            "icon": item.icon,
            "path": item.path,
            "active": item is active,
        }
        for item in visible_menu_items(role, billing_enabled)
    ]
