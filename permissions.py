"""Role to permission derivation."""
from collections.abc import Iterable, Mapping

ROLE_PREFIX = "ROLE_"


def role_marker(role: str) -> str:
    return f"{ROLE_PREFIX}{role}"


class PermissionCatalog:
    """Derives the authorities an account holds from its roles.

    The role map is handed in once at startup and never changes afterwards.
    Each role contributes its permission strings plus a ``ROLE_<NAME>`` marker,
    so role checks and permission checks are both plain membership tests.
    Roles missing from the map contribute nothing.
    """

    def __init__(self, role_permissions: Mapping[str, frozenset]):
        self._role_permissions = role_permissions

    def permissions_for(self, role: str) -> frozenset:
        return self._role_permissions.get(role, frozenset())

    def authorities_for(self, roles: Iterable[str]) -> frozenset:
        authorities = set()
        for role in roles:
            if role not in self._role_permissions:
                continue
            authorities |= self.permissions_for(role)
            authorities.add(role_marker(role))
        return frozenset(authorities)
