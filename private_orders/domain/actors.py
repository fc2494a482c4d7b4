"""
Acting users and the role checks shared by every workflow operation.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from private_orders.exceptions import Forbidden


class Role(str, Enum):
    """Role the caller acts under."""
    ADMIN = "admin"
    WINE_PARTNER = "wine_partner"
    DISTRIBUTOR = "distributor"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    """Acting user: id, role and the organization they belong to."""
    user_id: UUID | None
    role: Role
    partner_id: UUID | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def is_partner_of(self, partner_id: UUID | None) -> bool:
        return (
            self.role == Role.WINE_PARTNER
            and partner_id is not None
            and self.partner_id == partner_id
        )

    def is_distributor_of(self, distributor_id: UUID | None) -> bool:
        return (
            self.role == Role.DISTRIBUTOR
            and distributor_id is not None
            and self.partner_id == distributor_id
        )


SYSTEM_ACTOR = Actor(user_id=None, role=Role.SYSTEM)


def require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise Forbidden("Only platform administrators may perform this operation")


def require_partner_or_admin(actor: Actor, partner_id: UUID | None) -> None:
    if actor.is_admin or actor.is_partner_of(partner_id):
        return
    raise Forbidden("Order belongs to a different wine partner")


def require_distributor_or_admin(actor: Actor, distributor_id: UUID | None) -> None:
    if actor.is_admin or actor.is_distributor_of(distributor_id):
        return
    raise Forbidden("Order is not assigned to this distributor")


def require_party(actor: Actor, roles: frozenset[Role], partner_id, distributor_id) -> None:
    """Allow admins, and partner/distributor members of this order when their role is listed."""
    if actor.role not in roles:
        raise Forbidden(f"Role {actor.role.value} may not perform this step")
    if actor.role == Role.WINE_PARTNER and not actor.is_partner_of(partner_id):
        raise Forbidden("Order belongs to a different wine partner")
    if actor.role == Role.DISTRIBUTOR and not actor.is_distributor_of(distributor_id):
        raise Forbidden("Order is not assigned to this distributor")
