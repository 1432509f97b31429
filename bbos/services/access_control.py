"""
Role-based menu and route visibility
"""
from typing import Any, Dict, List, Optional
from bbos.models.profile import ROLE_ADMIN, ROLE_DATA_ENTRY_USER

MENU_ITEMS: List[Dict[str, Any]] = [
    {"title": "Dashboard", "path": "/dashboard", "roles": [ROLE_ADMIN, ROLE_DATA_ENTRY_USER]},
    {"title": "Data Collection", "path": "/data-collection", "roles": [ROLE_DATA_ENTRY_USER]},
    {"title": "Users", "path": "/admin/users", "roles": [ROLE_ADMIN]},
    {"title": "Departments", "path": "/admin/departments", "roles": [ROLE_ADMIN]},
    {"title": "Data Banks", "path": "/admin/data-banks", "roles": [ROLE_ADMIN, ROLE_DATA_ENTRY_USER]},
    {"title": "Forms", "path": "/admin/forms", "roles": [ROLE_ADMIN]},
    {"title": "Schedules", "path": "/admin/schedules", "roles": [ROLE_ADMIN]},
    {"title": "Reports", "path": "/reports", "roles": [ROLE_ADMIN]},
]

# Reachable by any signed-in user regardless of the menu
COMMON_ROUTES = ("/profile",)


def allowed_menu_items(role: Optional[str]) -> List[Dict[str, str]]:
    """Menu entries visible to a role, in display order"""
    if not role:
        return []
    return [
        {"title": item["title"], "path": item["path"]}
        for item in MENU_ITEMS
        if role in item["roles"]
    ]


def can_access_route(role: Optional[str], path: str) -> bool:
    if not role:
        return False
    if path in COMMON_ROUTES:
        return True
    return any(item["path"] == path for item in allowed_menu_items(role))
