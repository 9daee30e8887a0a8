from __future__ import annotations

import enum


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    STAFF = "STAFF"

    @classmethod
    def parse(cls, value: object) -> "Role | None":
        normalized = str(value or "").strip().upper()
        try:
            return cls(normalized)
        except ValueError:
            return None


class Resource(str, enum.Enum):
    CUSTOMERS = "customers"
    RESERVATIONS = "reservations"
    MESSAGES = "messages"
    SERVICES = "services"
    STAFF = "staff"
    ANALYTICS = "analytics"
    SETTINGS = "settings"


class Action(str, enum.Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    ADMIN = "admin"


Permission = tuple[Resource, Action]

_EVERYTHING: frozenset[Permission] = frozenset(
    (resource, action) for resource in Resource for action in Action
)

_FRONT_DESK: frozenset[Permission] = frozenset(
    {
        (Resource.CUSTOMERS, Action.READ),
        (Resource.CUSTOMERS, Action.WRITE),
        (Resource.RESERVATIONS, Action.READ),
        (Resource.RESERVATIONS, Action.WRITE),
        (Resource.MESSAGES, Action.READ),
        (Resource.MESSAGES, Action.WRITE),
        (Resource.ANALYTICS, Action.READ),
        (Resource.SETTINGS, Action.READ),
    }
)


def capabilities_for(role: Role) -> frozenset[Permission]:
    if role is Role.ADMIN:
        return _EVERYTHING
    if role is Role.MANAGER:
        return _FRONT_DESK
    if role is Role.STAFF:
        return _FRONT_DESK
    raise ValueError(f"No capability set defined for role {role!r}")


def is_allowed(role: Role, resource: Resource, action: Action) -> bool:
    return (resource, action) in capabilities_for(role)
