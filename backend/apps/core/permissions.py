"""Permission utilities for GraphQL."""
from strawberry.types import Info

from apps.core.context import Context


# --- Permission Registry ---
# Single source of truth for all grantable permissions.
# Each key is a resource, value is a list of valid actions.
PERMISSION_REGISTRY = {
    "customers": ["read", "write"],
    "invoices": ["read", "write", "issue", "void"],
    "credit_notes": ["read", "write", "issue"],
    "payments": ["read", "write"],
    "quotations": ["read", "write"],
    "reports": ["read"],
    "settings": ["read", "write"],
}

# All permissions as flat "resource.action" strings
ALL_PERMISSIONS = {
    f"{resource}.{action}"
    for resource, actions in PERMISSION_REGISTRY.items()
    for action in actions
}

# Default role definitions: role name -> set of granted permissions
DEFAULT_ROLES = {
    "Owner": {perm: True for perm in ALL_PERMISSIONS},
    "Bookkeeper": {
        perm: True
        for perm in ALL_PERMISSIONS
        if not perm.startswith("settings.") and perm != "invoices.void"
    },
    "Viewer": {
        perm: True
        for perm in ALL_PERMISSIONS
        if perm.endswith(".read")
    },
}


class PermissionError(Exception):
    """Raised when user lacks required permissions."""

    pass


def get_current_user(info: Info[Context, None]):
    """Get the current authenticated user or raise error."""
    if not info.context.is_authenticated:
        raise PermissionError("Authentication required")
    return info.context.user


def require_perm(info: Info[Context, None], resource: str, action: str):
    """Get the current user and verify they have the required permission.

    Raises PermissionError if not authenticated or permission denied.
    Returns the user on success. Use in queries.
    """
    user = get_current_user(info)
    if user.business_id is None:
        raise PermissionError("User has no business assigned")
    if not user.has_perm_check(resource, action):
        raise PermissionError(f"Permission denied: {resource}.{action}")
    return user


def check_perm(info: Info[Context, None], resource: str, action: str):
    """Get the current user and check permission without raising.

    Returns (user, None) on success or (None, error_string) on failure.
    Use in mutations that return result types.
    """
    user = get_current_user(info)
    if user.business_id is None or not user.has_perm_check(resource, action):
        return None, "Permission denied"
    return user, None
