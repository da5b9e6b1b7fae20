"""Caller identity — who is making a request, passed explicitly into every core call.

There is no ambient "current user": HTTP handlers resolve an ``Identity``
through an ``IdentityPort`` and hand it to the ordering services.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

from shared.exceptions import UnauthorizedError, ValidationError


class Role(Enum):
    CUSTOMER = "CUSTOMER"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: Role = Role.CUSTOMER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def can_access(self, owner_id) -> bool:
        """Owners see their own resources; admins see everything."""
        return self.is_admin or self.user_id == owner_id

    def require_admin(self) -> None:
        if not self.is_admin:
            raise UnauthorizedError({"_entity": ["Admin privileges required"]})


class IdentityPort(ABC):
    """Resolves the authenticated caller of a request."""

    @abstractmethod
    def resolve(self, headers) -> Identity:
        """Return the caller's identity or raise ``UnauthorizedError``."""
        ...


class TrustedHeaderIdentityProvider(IdentityPort):
    """Reads identity from headers set by an upstream authenticating gateway.

    ``X-User-Id`` carries the numeric user id and ``X-User-Role`` one of the
    ``Role`` values (``CUSTOMER`` when absent).
    """

    USER_HEADER = "X-User-Id"
    ROLE_HEADER = "X-User-Role"

    def resolve(self, headers) -> Identity:
        raw_user = headers.get(self.USER_HEADER)
        if not raw_user:
            raise UnauthorizedError({"_entity": ["Authentication required"]})
        try:
            user_id = int(raw_user)
        except ValueError as exc:
            raise ValidationError({self.USER_HEADER: [f"Invalid user id: {raw_user}"]}) from exc

        raw_role = (headers.get(self.ROLE_HEADER) or Role.CUSTOMER.value).upper()
        try:
            role = Role(raw_role)
        except ValueError as exc:
            raise ValidationError({self.ROLE_HEADER: [f"Unknown role: {raw_role}"]}) from exc

        return Identity(user_id=user_id, role=role)
