"""Audit whitelisting.

Decides, for every audited call, whether it is exempt from audit logging.
Two sources exist and may be combined:

- A static list of principal names from configuration. Authentication
  attempts are never exempted by the static list.
- Role based whitelists. Each role carries resources whitelisted per
  operation (or for ``ALL`` operations). Whitelisting a resource whitelists
  everything below it in the resource hierarchy.

Usage:
    from dbaudit.whitelist import (
        CombinedWhitelistFilter,
        InMemoryWhitelistStore,
        RoleWhitelistFilter,
        StaticWhitelistFilter,
        WhitelistCache,
    )

    store = InMemoryWhitelistStore()
    store.apply_option("batch_jobs", "grant_audit_whitelist_for_select", "data/metrics")

    whitelist_filter = CombinedWhitelistFilter(
        StaticWhitelistFilter(["cassandra"]),
        RoleWhitelistFilter(roles_of, WhitelistCache(store.lookup)),
    )
"""

from .filters import (
    CombinedWhitelistFilter,
    NoWhitelistFilter,
    RolesFunction,
    RoleWhitelistFilter,
    StaticWhitelistFilter,
    WhitelistFilter,
    is_exempt,
)
from .store import (
    ALL_SCOPE,
    InMemoryWhitelistStore,
    RoleWhitelist,
    WhitelistCache,
    WhitelistLookup,
    WhitelistOperation,
    normalize_scope,
    parse_resources,
    parse_whitelist_option,
    verify_scope,
)

__all__ = [
    # Filters
    "WhitelistFilter",
    "NoWhitelistFilter",
    "StaticWhitelistFilter",
    "RoleWhitelistFilter",
    "CombinedWhitelistFilter",
    "RolesFunction",
    "is_exempt",
    # Storage
    "ALL_SCOPE",
    "RoleWhitelist",
    "WhitelistLookup",
    "WhitelistOperation",
    "InMemoryWhitelistStore",
    "WhitelistCache",
    "parse_whitelist_option",
    "normalize_scope",
    "parse_resources",
    "verify_scope",
]
