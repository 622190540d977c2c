from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    admin = "admin"
    instructor = "instructor"
    student = "student"
    unknown = "unknown"

    @classmethod
    def parse(cls, raw: str | None) -> "Role":
        value = (raw or "").strip().lower()
        try:
            role = cls(value)
        except ValueError:
            return cls.unknown
        return role


class Destination(str, Enum):
    users_home = "/users"
    courses_home = "/courses"
    timetable_home = "/timetable"
    dashboard_home = "/dashboard"
    root_home = "/"
    sign_in_page = "/auth"


# Landing after the gate clears (sign-in page).
POST_VERIFICATION_LANDING: dict[Role, Destination] = {
    Role.admin: Destination.users_home,
    Role.instructor: Destination.courses_home,
    Role.student: Destination.timetable_home,
    Role.unknown: Destination.root_home,
}

# Landing for an already-cleared visitor hitting the root route.
ROOT_ROUTE_LANDING: dict[Role, Destination] = {
    Role.admin: Destination.dashboard_home,
    Role.instructor: Destination.dashboard_home,
    Role.student: Destination.timetable_home,
    Role.unknown: Destination.timetable_home,
}


def resolve_landing(role: Role | str | None, deep_link: str | None = None) -> str:
    """First screen after the gate clears. A deep link other than the sign-in page wins."""
    if deep_link and deep_link != Destination.sign_in_page.value:
        return deep_link
    if not isinstance(role, Role):
        role = Role.parse(role)
    return POST_VERIFICATION_LANDING[role].value


def resolve_root_landing(role: Role | str | None) -> str:
    if not isinstance(role, Role):
        role = Role.parse(role)
    return ROOT_ROUTE_LANDING[role].value


def landing_table_divergence() -> dict[Role, tuple[Destination, Destination]]:
    """Roles for which the two landing tables disagree, as (post-verification, root-route)."""
    return {
        role: (POST_VERIFICATION_LANDING[role], ROOT_ROUTE_LANDING[role])
        for role in Role
        if POST_VERIFICATION_LANDING[role] != ROOT_ROUTE_LANDING[role]
    }
