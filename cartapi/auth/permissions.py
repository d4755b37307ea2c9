"""
Central registry of allowed actions per role.
"""
ROLE_SCOPES = {
    "customer": set(),
    "shop_manager": {"view_sessions", "view_stats"},
    "administrator": {"*"},
}

def role_has_scope(role: str, action: str) -> bool:
    scopes = ROLE_SCOPES.get(role, set())
    return "*" in scopes or action in scopes
