"""Whitelist filters deciding whether an audit event is exempt.

Four filters are available:
- NoWhitelistFilter: nothing is exempt
- StaticWhitelistFilter: principals listed in configuration are exempt,
  except for connection (authentication) events
- RoleWhitelistFilter: roles granted to the principal carry whitelisted
  resources per operation
- CombinedWhitelistFilter: exempt if any of its filters says exempt

Lookup failures are never turned into a decision; they propagate.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Set

from ..entry import AuditEvent
from ..resources import ConnectionResource, Permission, Resource, accepts
from .store import ALL_SCOPE, RoleWhitelist, WhitelistLookup

logger = logging.getLogger("dbaudit.whitelist")

RolesFunction = Callable[[str], Set[str]]


def _scopes_for(permission: Permission | None) -> tuple[str, ...]:
    if permission is None:
        return (ALL_SCOPE,)
    return (ALL_SCOPE, permission.value)


def _bucket_accepts(whitelist: RoleWhitelist, scope: str, resource: Resource) -> bool:
    bucket = whitelist.get(scope)
    if not bucket:
        return False
    return any(accepts(whitelisted, resource) for whitelisted in bucket)


def _permission_whitelisted(
    permission: Permission | None,
    resource: Resource,
    roles: Iterable[str],
    lookup: WhitelistLookup,
) -> bool:
    for role in roles:
        whitelist = lookup(role)
        for scope in _scopes_for(permission):
            if _bucket_accepts(whitelist, scope, resource):
                logger.debug(f"{resource.name} whitelisted for {scope} by role {role}")
                return True
    return False


def is_exempt(event: AuditEvent, roles: Set[str], lookup: WhitelistLookup) -> bool:
    """Decide exemption from role based whitelists.

    Every permission of the event must be whitelisted by at least one role.
    A permission is whitelisted when the role's ``ALL`` bucket or the bucket
    named after the permission holds a resource accepting the event resource.
    Events without permissions only consult the ``ALL`` bucket.

    Args:
        event: The audit event
        roles: All roles granted to the event principal, directly or indirectly
        lookup: Role whitelist lookup; its errors propagate

    Returns:
        True if the event is exempt from audit
    """
    if not roles:
        return False

    permissions: Iterable[Permission | None] = event.permissions or (None,)
    return all(
        _permission_whitelisted(permission, event.resource, roles, lookup)
        for permission in permissions
    )


class WhitelistFilter(ABC):
    """Decides whether an audit event is exempt from audit logging."""

    def setup(self) -> None:
        """Prepare the filter before the first event."""

    @abstractmethod
    def is_whitelisted(self, event: AuditEvent) -> bool:
        """Return True if the event must not be audit logged."""


class NoWhitelistFilter(WhitelistFilter):
    """Audits every event."""

    def is_whitelisted(self, event: AuditEvent) -> bool:
        return False


class StaticWhitelistFilter(WhitelistFilter):
    """Exempts a configured set of principals.

    Authentication attempts are always audited, whatever the list says.
    """

    def __init__(self, principals: Iterable[str] = ()):
        self.principals = frozenset(principals)

    def is_whitelisted(self, event: AuditEvent) -> bool:
        if isinstance(event.resource, ConnectionResource):
            return False
        return event.principal in self.principals


class RoleWhitelistFilter(WhitelistFilter):
    """Exempts events whitelisted for any role granted to the principal.

    Args:
        roles_of: Returns the transitive closure of roles granted to a principal
        lookup: Role whitelist lookup, normally a ``WhitelistCache``
    """

    def __init__(self, roles_of: RolesFunction, lookup: WhitelistLookup):
        self._roles_of = roles_of
        self._lookup = lookup

    def is_whitelisted(self, event: AuditEvent) -> bool:
        roles = self._roles_of(event.principal)
        return is_exempt(event, roles, self._lookup)


class CombinedWhitelistFilter(WhitelistFilter):
    """Exempt if any of the wrapped filters exempts the event."""

    def __init__(self, *filters: WhitelistFilter):
        self.filters = filters

    def setup(self) -> None:
        for whitelist_filter in self.filters:
            whitelist_filter.setup()

    def is_whitelisted(self, event: AuditEvent) -> bool:
        return any(f.is_whitelisted(event) for f in self.filters)


__all__ = [
    "RolesFunction",
    "is_exempt",
    "WhitelistFilter",
    "NoWhitelistFilter",
    "StaticWhitelistFilter",
    "RoleWhitelistFilter",
    "CombinedWhitelistFilter",
]
