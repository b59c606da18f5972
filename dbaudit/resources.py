"""Permissions and the resource hierarchy seen by the audit pipeline.

Resources are supplied by the host per audited call. Every resource variant
forms a tree through ``parent()``; the root of each variant has no parent:

    data -> data/ks -> data/ks/tbl
    roles -> roles/name
    functions -> functions/ks -> functions/ks/fn(int,text)
    connections

A whitelisted resource accepts an event resource when it is the same resource
or one of its ancestors, so whitelisting a keyspace whitelists all its tables.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import Enum


class Permission(str, Enum):
    """The kind of access an audited operation performs."""

    CREATE = "CREATE"
    ALTER = "ALTER"
    DROP = "DROP"
    SELECT = "SELECT"
    MODIFY = "MODIFY"
    AUTHORIZE = "AUTHORIZE"
    DESCRIBE = "DESCRIBE"
    EXECUTE = "EXECUTE"


_DATA_PERMISSIONS = frozenset(
    {
        Permission.CREATE,
        Permission.ALTER,
        Permission.DROP,
        Permission.SELECT,
        Permission.MODIFY,
        Permission.AUTHORIZE,
    }
)
_TABLE_PERMISSIONS = _DATA_PERMISSIONS - {Permission.CREATE}
_ROLE_ROOT_PERMISSIONS = frozenset(
    {
        Permission.CREATE,
        Permission.ALTER,
        Permission.DROP,
        Permission.AUTHORIZE,
        Permission.DESCRIBE,
    }
)
_ROLE_PERMISSIONS = frozenset({Permission.ALTER, Permission.DROP, Permission.AUTHORIZE})
_FUNCTION_ROOT_PERMISSIONS = frozenset(
    {
        Permission.CREATE,
        Permission.ALTER,
        Permission.DROP,
        Permission.AUTHORIZE,
        Permission.EXECUTE,
    }
)
_FUNCTION_PERMISSIONS = _FUNCTION_ROOT_PERMISSIONS - {Permission.CREATE}
# EXECUTE on the connection root represents "connect"
_CONNECTION_PERMISSIONS = frozenset({Permission.AUTHORIZE, Permission.EXECUTE})


class Resource(ABC):
    """A node in a resource hierarchy.

    Nodes only know their parent and never own children. Equality and hashing
    are based on the variant and the canonical name.
    """

    __slots__ = ()

    @property
    @abstractmethod
    def name(self) -> str:
        """Canonical name, e.g. ``data/ks/tbl``."""

    @abstractmethod
    def parent(self) -> Resource | None:
        """Return the parent resource, or None for a root."""

    @property
    @abstractmethod
    def applicable_permissions(self) -> frozenset[Permission]:
        """Permissions that may be granted or whitelisted on this resource."""

    def has_parent(self) -> bool:
        return self.parent() is not None

    def chain(self) -> list[Resource]:
        """Return this resource followed by all of its ancestors."""
        resources: list[Resource] = []
        current: Resource | None = self
        while current is not None:
            resources.append(current)
            current = current.parent()
        return resources

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Resource):
            return NotImplemented
        return type(self) is type(other) and self.name == other.name

    def __hash__(self) -> int:
        return hash((type(self).__name__, self.name))

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"

    def __str__(self) -> str:
        return self.name


class ConnectionResource(Resource):
    """The root of all client connections (login and authentication)."""

    ROOT_NAME = "connections"

    __slots__ = ()

    @property
    def name(self) -> str:
        return self.ROOT_NAME

    def parent(self) -> Resource | None:
        return None

    @property
    def applicable_permissions(self) -> frozenset[Permission]:
        return _CONNECTION_PERMISSIONS


class DataResource(Resource):
    """All keyspaces, a keyspace, or a table."""

    ROOT_NAME = "data"

    __slots__ = ("keyspace", "table")

    def __init__(self, keyspace: str | None = None, table: str | None = None):
        if table is not None and keyspace is None:
            raise ValueError("A table resource requires a keyspace")
        self.keyspace = keyspace
        self.table = table

    @property
    def name(self) -> str:
        if self.keyspace is None:
            return self.ROOT_NAME
        if self.table is None:
            return f"{self.ROOT_NAME}/{self.keyspace}"
        return f"{self.ROOT_NAME}/{self.keyspace}/{self.table}"

    def parent(self) -> Resource | None:
        if self.table is not None:
            return DataResource(self.keyspace)
        if self.keyspace is not None:
            return DataResource()
        return None

    @property
    def applicable_permissions(self) -> frozenset[Permission]:
        return _TABLE_PERMISSIONS if self.table is not None else _DATA_PERMISSIONS


class RoleResource(Resource):
    """All roles, or a single role."""

    ROOT_NAME = "roles"

    __slots__ = ("role",)

    def __init__(self, role: str | None = None):
        self.role = role

    @property
    def name(self) -> str:
        if self.role is None:
            return self.ROOT_NAME
        return f"{self.ROOT_NAME}/{self.role}"

    def parent(self) -> Resource | None:
        return RoleResource() if self.role is not None else None

    @property
    def applicable_permissions(self) -> frozenset[Permission]:
        return _ROLE_PERMISSIONS if self.role is not None else _ROLE_ROOT_PERMISSIONS


class FunctionResource(Resource):
    """All functions, the functions of a keyspace, or a single function.

    The signature is kept opaque, e.g. ``plus(int,int)``.
    """

    ROOT_NAME = "functions"

    __slots__ = ("keyspace", "signature")

    def __init__(self, keyspace: str | None = None, signature: str | None = None):
        if signature is not None and keyspace is None:
            raise ValueError("A function resource requires a keyspace")
        self.keyspace = keyspace
        self.signature = signature

    @property
    def name(self) -> str:
        if self.keyspace is None:
            return self.ROOT_NAME
        if self.signature is None:
            return f"{self.ROOT_NAME}/{self.keyspace}"
        return f"{self.ROOT_NAME}/{self.keyspace}/{self.signature}"

    def parent(self) -> Resource | None:
        if self.signature is not None:
            return FunctionResource(self.keyspace)
        if self.keyspace is not None:
            return FunctionResource()
        return None

    @property
    def applicable_permissions(self) -> frozenset[Permission]:
        if self.signature is not None:
            return _FUNCTION_PERMISSIONS
        return _FUNCTION_ROOT_PERMISSIONS


def accepts(whitelisted: Resource, resource: Resource) -> bool:
    """Check whether a whitelisted resource covers an event resource.

    True when ``whitelisted`` is ``resource`` itself or one of its ancestors.
    The parent chain is walked iteratively.
    """
    current: Resource | None = resource
    while current is not None:
        if current == whitelisted:
            return True
        current = current.parent()
    return False


def parse_resource(name: str) -> Resource:
    """Parse a canonical resource name.

    Args:
        name: Name such as ``data/ks/tbl``, ``roles/bob`` or ``connections``

    Returns:
        The matching Resource

    Raises:
        ValueError: If the name is not a valid resource name
    """
    parts = name.strip().split("/")
    if not parts or not parts[0] or any(not part for part in parts):
        raise ValueError(f"{name!r} is not a valid resource name")

    root = parts[0].lower()
    if root == ConnectionResource.ROOT_NAME and len(parts) == 1:
        return ConnectionResource()
    if root == DataResource.ROOT_NAME and len(parts) <= 3:
        return DataResource(*parts[1:])
    if root == RoleResource.ROOT_NAME and len(parts) <= 2:
        return RoleResource(*parts[1:])
    if root == FunctionResource.ROOT_NAME and len(parts) <= 3:
        return FunctionResource(*parts[1:])

    raise ValueError(f"{name!r} is not a valid resource name")


__all__ = [
    "Permission",
    "Resource",
    "ConnectionResource",
    "DataResource",
    "RoleResource",
    "FunctionResource",
    "accepts",
    "parse_resource",
]
