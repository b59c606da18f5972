"""Role whitelist storage, option parsing and the lookup cache.

A role whitelist maps a scope key to the set of whitelisted resources. The
scope key is either ``ALL`` (every operation) or a permission name such as
``SELECT``. The host normally owns the backing store; ``InMemoryWhitelistStore``
is a self-contained store suitable for embedding and testing, and
``WhitelistCache`` caches any lookup function per role.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections.abc import Callable, Iterable, Mapping, Set
from dataclasses import dataclass, field
from enum import Enum

from ..errors import InvalidWhitelistError, PolicyLookupError
from ..resources import Permission, Resource, parse_resource

logger = logging.getLogger("dbaudit.whitelist")

ALL_SCOPE = "ALL"

RoleWhitelist = Mapping[str, Set[Resource]]
WhitelistLookup = Callable[[str], RoleWhitelist]

_GRANT_PREFIX = "grant_audit_whitelist_for_"
_REVOKE_PREFIX = "revoke_audit_whitelist_for_"


class WhitelistOperation(str, Enum):
    """Change requested through a whitelist role option."""

    GRANT = "grant"
    REVOKE = "revoke"


def _normalize_option(option: str) -> str:
    return re.sub(r"\s+", "_", option.strip()).lower()


def parse_whitelist_option(option: str) -> tuple[WhitelistOperation, str]:
    """Parse a role option such as ``grant_audit_whitelist_for_select``.

    Args:
        option: The option name; whitespace is treated as underscores

    Returns:
        Tuple of the requested operation and the scope key (``ALL`` or a
        permission name)

    Raises:
        InvalidWhitelistError: If the option or its operation is unknown
    """
    normalized = _normalize_option(option)

    if normalized.startswith(_GRANT_PREFIX):
        operation = WhitelistOperation.GRANT
        scope = normalized[len(_GRANT_PREFIX):]
    elif normalized.startswith(_REVOKE_PREFIX):
        operation = WhitelistOperation.REVOKE
        scope = normalized[len(_REVOKE_PREFIX):]
    else:
        raise InvalidWhitelistError(f"Invalid whitelist operation option: {option}")

    return operation, normalize_scope(scope)


def normalize_scope(scope: str) -> str:
    """Return the canonical scope key, ``ALL`` or an upper case permission name.

    Raises:
        InvalidWhitelistError: If the scope names no known operation
    """
    key = scope.strip().upper()
    if key == ALL_SCOPE:
        return key

    try:
        return Permission(key).value
    except ValueError:
        raise InvalidWhitelistError(f"Invalid whitelist option: unknown operation '{key}'")


def verify_scope(scope: str, resource: Resource) -> None:
    """Check that a scope key can be whitelisted on a resource.

    Raises:
        InvalidWhitelistError: If the permission is not applicable on the resource
    """
    scope = normalize_scope(scope)
    if scope == ALL_SCOPE:
        return
    if Permission(scope) not in resource.applicable_permissions:
        raise InvalidWhitelistError(f"Operation {scope} is not applicable on {resource.name}")


def parse_resources(value: str) -> list[Resource]:
    """Parse a comma separated list of resource names.

    Raises:
        InvalidWhitelistError: If any name cannot be parsed
    """
    resources = []
    for name in value.split(","):
        name = name.strip()
        if not name:
            continue
        try:
            resources.append(parse_resource(name))
        except ValueError as e:
            raise InvalidWhitelistError(f"Unable to parse whitelisted resource [{name}]: {e}")
    return resources


class InMemoryWhitelistStore:
    """Thread-safe in-memory store of role whitelists.

    ``lookup`` has the signature expected by ``RoleWhitelistFilter`` and
    ``WhitelistCache`` and returns an immutable snapshot.
    """

    def __init__(self) -> None:
        self._whitelists: dict[str, dict[str, set[Resource]]] = {}
        self._lock = threading.Lock()

    def grant(self, role: str, scope: str, resources: Iterable[Resource]) -> None:
        """Whitelist resources for a role under a scope key.

        Raises:
            InvalidWhitelistError: If the scope is unknown or not applicable
                on one of the resources
        """
        scope = normalize_scope(scope)
        resources = list(resources)
        for resource in resources:
            verify_scope(scope, resource)

        with self._lock:
            bucket = self._whitelists.setdefault(role, {}).setdefault(scope, set())
            bucket.update(resources)
        logger.info(f"Granted audit whitelist {scope} on {[r.name for r in resources]} to {role}")

    def revoke(self, role: str, scope: str, resources: Iterable[Resource]) -> None:
        """Remove whitelisted resources from a role's scope bucket."""
        scope = normalize_scope(scope)
        resources = list(resources)
        with self._lock:
            buckets = self._whitelists.get(role, {})
            bucket = buckets.get(scope)
            if bucket is None:
                return
            bucket.difference_update(resources)
            if not bucket:
                del buckets[scope]
            if not buckets:
                self._whitelists.pop(role, None)
        logger.info(f"Revoked audit whitelist {scope} on {[r.name for r in resources]} from {role}")

    def apply_option(self, role: str, option: str, value: str) -> WhitelistOperation:
        """Apply a role option such as ``grant_audit_whitelist_for_all: 'data/ks'``.

        Args:
            role: Role the option is set on
            option: Option name
            value: Comma separated resource names

        Returns:
            The operation that was applied
        """
        operation, scope = parse_whitelist_option(option)
        resources = parse_resources(value)

        if operation == WhitelistOperation.GRANT:
            self.grant(role, scope, resources)
        else:
            self.revoke(role, scope, resources)
        return operation

    def drop_role(self, role: str) -> None:
        with self._lock:
            self._whitelists.pop(role, None)

    def lookup(self, role: str) -> dict[str, frozenset[Resource]]:
        with self._lock:
            buckets = self._whitelists.get(role, {})
            return {scope: frozenset(resources) for scope, resources in buckets.items()}


@dataclass
class _CachedWhitelist:
    whitelist: RoleWhitelist
    created_at: float = field(default_factory=time.monotonic)

    def is_expired(self, validity_seconds: float) -> bool:
        return time.monotonic() - self.created_at > validity_seconds


class WhitelistCache:
    """Per-role cache in front of a whitelist lookup function.

    Any error raised by the lookup is surfaced as ``PolicyLookupError`` and
    nothing is cached for that role.

    Attributes:
        validity_seconds: How long a role whitelist is reused; 0 disables caching
        max_entries: Maximum number of cached roles
    """

    def __init__(
        self,
        lookup: WhitelistLookup,
        validity_seconds: float = 2.0,
        max_entries: int = 1000,
    ):
        self._lookup = lookup
        self.validity_seconds = validity_seconds
        self.max_entries = max_entries
        self._entries: dict[str, _CachedWhitelist] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, role: str) -> RoleWhitelist:
        """Return the whitelist of a role, loading it when missing or expired."""
        if self.validity_seconds > 0:
            with self._lock:
                entry = self._entries.get(role)
                if entry is not None and not entry.is_expired(self.validity_seconds):
                    self._hits += 1
                    return entry.whitelist
                self._misses += 1

        whitelist = self._load(role)

        if self.validity_seconds > 0:
            with self._lock:
                if len(self._entries) >= self.max_entries and role not in self._entries:
                    oldest = next(iter(self._entries))
                    del self._entries[oldest]
                self._entries[role] = _CachedWhitelist(whitelist)

        return whitelist

    __call__ = get

    def _load(self, role: str) -> RoleWhitelist:
        try:
            return self._lookup(role)
        except PolicyLookupError:
            raise
        except Exception as e:
            raise PolicyLookupError(role, str(e)) from e

    def invalidate(self, role: str) -> None:
        with self._lock:
            self._entries.pop(role, None)

    def invalidate_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict:
        """Return cache statistics."""
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "max_entries": self.max_entries,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": self._hits / total if total > 0 else 0.0,
            }


__all__ = [
    "ALL_SCOPE",
    "RoleWhitelist",
    "WhitelistLookup",
    "WhitelistOperation",
    "parse_whitelist_option",
    "normalize_scope",
    "parse_resources",
    "verify_scope",
    "InMemoryWhitelistStore",
    "WhitelistCache",
]
