from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Protocol

from app.core.errors import OwnershipViolation, PermissionDenied


class Role(str, enum.Enum):
    STUDENT = "STUDENT"
    TUTOR = "TUTOR"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class Principal:
    """Caller identity handed in by the (external) authentication layer."""

    user_id: str
    role: Role


def require_roles(principal: Principal, *allowed: Role) -> Principal:
    if principal.role not in allowed:
        raise PermissionDenied(
            "Sem permissão para esta operação.",
            role=principal.role.value,
            allowed=[r.value for r in allowed],
        )
    return principal


class Authorizer(Protocol):
    def ensure_owner(self, caller_id: str, owner_id: str, resource: str) -> None: ...


class OwnershipAuthorizer:
    """Plain equality: the acting tutor must be the resource's tutor."""

    def ensure_owner(self, caller_id: str, owner_id: str, resource: str) -> None:
        if caller_id != owner_id:
            raise OwnershipViolation(
                f"Você não é o dono deste recurso ({resource}).",
                resource=resource,
            )
