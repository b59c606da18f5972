"""The immutable audit event handed to the pipeline by the host."""

from __future__ import annotations

import time
import uuid
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .resources import Permission, Resource


class Status(str, Enum):
    """Outcome of the audited call at the time the event was produced."""

    ATTEMPT = "ATTEMPT"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


def _now_millis() -> int:
    return int(time.time() * 1000)


class AuditEvent(BaseModel):
    """One audited call's fact set.

    Events are never mutated. Redaction produces a new event through
    ``with_operation``.

    Attributes:
        principal: The authenticated user performing the call
        client_address: Client IP address
        client_port: Client port, if known
        coordinator_address: Address of the node serving the call
        batch_id: Batch identifier when the call is part of a batch
        status: ATTEMPT, SUCCEEDED or FAILED
        operation: The operation text, None when unknown
        operation_known: False when the text could not be resolved from the
            statement (e.g. an unparsed prepared statement)
        naked_operation: Operation text without bound values, if available
        permissions: Permissions exercised by the call
        resource: Resource the call accessed
        timestamp: Milliseconds since the epoch
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    principal: str
    client_address: str | None = None
    client_port: int | None = None
    coordinator_address: str | None = None
    batch_id: uuid.UUID | None = None
    status: Status = Status.ATTEMPT
    operation: str | None = None
    operation_known: bool = True
    naked_operation: str | None = None
    permissions: frozenset[Permission] = Field(default_factory=frozenset)
    resource: Resource
    timestamp: int = Field(default_factory=_now_millis)

    @property
    def has_known_operation(self) -> bool:
        return self.operation is not None and self.operation_known

    def with_operation(self, operation: str) -> AuditEvent:
        """Return a copy of this event carrying a replaced operation text."""
        return self.model_copy(update={"operation": operation})


__all__ = ["Status", "AuditEvent"]
