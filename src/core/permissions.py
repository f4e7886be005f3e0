"""
Access-control lists attached to stored records.

Grants are written as ``action("role")`` strings, e.g. ``read("any")`` or
``delete("team:team_1")``. The document store keeps them with the record;
nothing in this service authenticates the identifiers it is handed.
"""

from typing import List, Optional

ANY = "any"


def grant(action: str, role: str) -> str:
    return f'{action}("{role}")'


def team_role(team_id: str) -> str:
    return f"team:{team_id}"


def user_role(user_id: str) -> str:
    return f"user:{user_id}"


def build_permissions(team_id: Optional[str] = None, user_id: Optional[str] = None) -> List[str]:
    """Public read, update/delete restricted to the given team and user."""
    permissions = [grant("read", ANY)]

    owners = []
    if team_id:
        owners.append(team_role(team_id))
    if user_id:
        owners.append(user_role(user_id))

    for role in owners:
        permissions.append(grant("update", role))
        permissions.append(grant("delete", role))
    return permissions
