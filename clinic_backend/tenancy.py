"""Tenant directory: which clinics a user belongs to, and with which role."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping

from .errors import Forbidden
from .models import ClinicRole
from .storage import Storage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Actor:
    """Caller of an operation, as supplied by the identity collaborator."""

    user_id: str
    clinic_roles: Mapping[str, ClinicRole] = field(default_factory=dict)

    def is_member(self, clinic_id: str) -> bool:
        return clinic_id in self.clinic_roles

    def is_staff(self, clinic_id: str) -> bool:
        return self.clinic_roles.get(clinic_id) is ClinicRole.STAFF


class TenantDirectory:
    def __init__(self, storage: Storage):
        self.storage = storage

    def clinics_for_user(self, user_id: str) -> dict[str, ClinicRole]:
        return self.storage.load_memberships(user_id)

    def actor_for(self, user_id: str) -> Actor:
        return Actor(user_id=user_id, clinic_roles=self.clinics_for_user(user_id))

    def resolve_clinic(self, actor: Actor, clinic_id: str | None = None) -> str:
        """
        The clinic the actor works in.
        Without an explicit clinic the actor must belong to exactly one.
        """
        if clinic_id is not None:
            if not actor.is_member(clinic_id):
                logger.warning(f"User {actor.user_id} is not a member of clinic {clinic_id}")
                raise Forbidden(f"User {actor.user_id} is not a member of clinic {clinic_id}")
            return clinic_id

        if len(actor.clinic_roles) != 1:
            raise Forbidden(
                f"User {actor.user_id} belongs to {len(actor.clinic_roles)} clinics: a clinic must be chosen"
            )
        return next(iter(actor.clinic_roles))

    def require_staff(self, actor: Actor, clinic_id: str) -> None:
        if not actor.is_staff(clinic_id):
            raise Forbidden(f"User {actor.user_id} is not staff of clinic {clinic_id}")
