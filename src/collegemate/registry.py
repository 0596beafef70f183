"""Endpoint registry: a static table describing every resource operation.

Each :class:`Endpoint` is plain data: method, path template, whether the body
is multipart, the tags a read provides or a write invalidates, and any effect
on the session. :class:`collegemate.api.CampusApi` is the generic executor
that consumes it.
"""

from __future__ import annotations

import string
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any
from urllib.parse import quote

from collegemate.tags import make_tag
from collegemate.types import RequestDescriptor, Tag


class SessionEffect(Enum):
    """What a successful call does to the session."""

    SET_CREDENTIALS = "set_credentials"
    CLEAR = "clear"
    REFRESH = "refresh"


@dataclass(frozen=True, slots=True)
class TagRef:
    """A tag template: ``param`` names the call argument that supplies the id."""

    kind: str
    param: str | None = None

    def resolve(self, params: Mapping[str, Any]) -> Tag:
        if self.param is None:
            return make_tag(self.kind)
        return make_tag(self.kind, params[self.param])


@dataclass(frozen=True, slots=True)
class Endpoint:
    """Declarative description of one resource operation."""

    name: str
    method: str
    path: str
    query: bool
    multipart: bool = False
    reauth: bool = True
    provides: tuple[TagRef, ...] = ()
    invalidates: tuple[TagRef, ...] = ()
    query_params: tuple[str, ...] = ()
    session_effect: SessionEffect | None = None

    @property
    def path_params(self) -> tuple[str, ...]:
        return tuple(
            name for _, name, _, _ in string.Formatter().parse(self.path) if name
        )

    def _check_params(self, params: Mapping[str, Any]) -> None:
        expected = set(self.path_params)
        missing = expected - params.keys()
        if missing:
            raise TypeError(
                f"{self.name}() missing required argument(s): {', '.join(sorted(missing))}"
            )
        unknown = params.keys() - expected - set(self.query_params)
        if unknown:
            raise TypeError(
                f"{self.name}() got unexpected argument(s): {', '.join(sorted(unknown))}"
            )

    def build(
        self,
        body: Mapping[str, Any] | None = None,
        **params: Any,
    ) -> RequestDescriptor:
        """Build the request descriptor for one call of this endpoint."""
        self._check_params(params)
        path = self.path.format(
            **{name: quote(str(params[name]), safe="") for name in self.path_params}
        )
        query = {
            name: params[name]
            for name in self.query_params
            if params.get(name) is not None
        }
        return RequestDescriptor(
            method=self.method,
            path=path,
            body=body,
            params=query or None,
            multipart=self.multipart,
            reauth=self.reauth,
        )

    def provided_tags(self, params: Mapping[str, Any]) -> tuple[Tag, ...]:
        return tuple(ref.resolve(params) for ref in self.provides)

    def invalidated_tags(self, params: Mapping[str, Any]) -> tuple[Tag, ...]:
        return tuple(ref.resolve(params) for ref in self.invalidates)


def _query(
    name: str,
    path: str,
    *provides: TagRef,
    query_params: tuple[str, ...] = (),
) -> Endpoint:
    return Endpoint(
        name=name,
        method="GET",
        path=path,
        query=True,
        provides=provides,
        query_params=query_params,
    )


def _mutation(
    name: str,
    method: str,
    path: str,
    *invalidates: TagRef,
    multipart: bool = False,
    reauth: bool = True,
    session_effect: SessionEffect | None = None,
) -> Endpoint:
    return Endpoint(
        name=name,
        method=method,
        path=path,
        query=False,
        multipart=multipart,
        reauth=reauth,
        invalidates=invalidates,
        session_effect=session_effect,
    )


AUTH = TagRef("Auth")
COMPLAINTS = TagRef("Complaints")
EVENTS = TagRef("Events")
LOST_FOUND = TagRef("LostFound")
PLACEMENTS = TagRef("Placements")
NOTIFICATIONS = TagRef("Notifications")
ADMIN_STATUS = TagRef("AdminStatus")
ADMINS = TagRef("Admins")

# Everything tied to the logged-in identity; Events are campus-wide.
USER_SCOPED = (AUTH, COMPLAINTS, LOST_FOUND, PLACEMENTS, NOTIFICATIONS, ADMIN_STATUS, ADMINS)

ENDPOINTS: tuple[Endpoint, ...] = (
    # Auth
    _mutation("register", "POST", "/register", multipart=True, reauth=False),
    _mutation(
        "login",
        "POST",
        "/login",
        *USER_SCOPED,
        reauth=False,
        session_effect=SessionEffect.SET_CREDENTIALS,
    ),
    _mutation(
        "logout", "POST", "/logout", *USER_SCOPED, session_effect=SessionEffect.CLEAR
    ),
    _mutation(
        "refresh_token",
        "POST",
        "/refresh-token",
        reauth=False,
        session_effect=SessionEffect.REFRESH,
    ),
    _mutation("change_password", "POST", "/change-password"),
    # Events
    _mutation("create_event", "POST", "/events/create", EVENTS, multipart=True),
    _query("get_all_events", "/events/all", EVENTS),
    _query("get_event_by_id", "/events/view/{id}", TagRef("Events", "id")),
    _mutation(
        "update_event",
        "PUT",
        "/events/update/{id}",
        TagRef("Events", "id"),
        EVENTS,
        multipart=True,
    ),
    _mutation(
        "delete_event", "DELETE", "/events/delete/{id}", TagRef("Events", "id"), EVENTS
    ),
    _mutation(
        "add_or_update_reaction", "POST", "/events/{id}/reactions", TagRef("Events", "id")
    ),
    _mutation("delete_reaction", "DELETE", "/events/{id}/reactions", TagRef("Events", "id")),
    _query("get_reactions_for_event", "/events/{id}/reactions", TagRef("Events", "id")),
    _query("get_users_who_reacted", "/events/{id}/reactions/users", TagRef("Events", "id")),
    # Complaints
    _mutation("create_complaint", "POST", "/comp/complaints", COMPLAINTS, multipart=True),
    _query("get_my_complaints", "/comp/my-complaints", COMPLAINTS),
    _query("get_all_complaints", "/comp/all-complaints", COMPLAINTS),
    _query("get_complaint_by_id", "/comp/complaints/{id}", TagRef("Complaints", "id")),
    _mutation(
        "update_complaint_status", "POST", "/comp/update-complaint-status", COMPLAINTS
    ),
    _mutation("delete_complaint", "DELETE", "/comp/complaints/{id}", COMPLAINTS),
    _mutation(
        "assign_complaint_to_admin",
        "POST",
        "/comp/assign-complaint/{id}/{admin_id}",
        COMPLAINTS,
    ),
    _query("get_admin_complaint_status", "/comp/admin-status", ADMIN_STATUS),
    _query(
        "search_complaints",
        "/comp/search-complaints",
        COMPLAINTS,
        query_params=("query",),
    ),
    # Notifications
    _query("get_complaint_notifications", "/notifications", NOTIFICATIONS),
    _query("get_lost_found_notifications", "/notifications", NOTIFICATIONS),
    _mutation(
        "mark_notification_as_read", "POST", "/mark-notification-read", NOTIFICATIONS
    ),
    _mutation(
        "mark_all_notifications_as_read",
        "POST",
        "/mark-all-notifications-read",
        NOTIFICATIONS,
    ),
    # Lost and found
    _mutation("create_found_item", "POST", "/items/found-item", LOST_FOUND, multipart=True),
    _mutation("create_lost_item", "POST", "/items/lost-item", LOST_FOUND, multipart=True),
    _query("get_all_found_items", "/items/found-items", LOST_FOUND),
    _query("get_all_lost_items", "/items/lost-items", LOST_FOUND),
    _query("get_found_item_by_id", "/items/found-item/{id}", TagRef("LostFound", "id")),
    _query("get_lost_item_by_id", "/items/lost-item/{id}", TagRef("LostFound", "id")),
    _mutation("delete_found_item", "DELETE", "/items/found-item/{id}", LOST_FOUND),
    _mutation("delete_lost_item", "DELETE", "/items/lost-item/{id}", LOST_FOUND),
    _query("get_my_found_listings", "/items/my-found-listings", LOST_FOUND),
    _query("get_my_lost_listings", "/items/my-lost-listings", LOST_FOUND),
    # Placements
    _mutation("create_placement", "POST", "/placement/create", PLACEMENTS),
    _query("get_all_admins", "/placement/all-admins", ADMINS),
    _mutation(
        "assign_placement_to_admin",
        "POST",
        "/placement/{id}/assign-admin",
        TagRef("Placements", "id"),
        PLACEMENTS,
    ),
    _query("get_all_placements", "/placement/admin/all", PLACEMENTS),
    _query("get_all_placements_for_admin", "/placement/admin/all", PLACEMENTS),
    _mutation(
        "add_placement_update",
        "POST",
        "/placement/{id}/update",
        TagRef("Placements", "id"),
        PLACEMENTS,
    ),
    _mutation(
        "update_student_status",
        "POST",
        "/placement/{id}/update-status",
        TagRef("Placements", "id"),
        PLACEMENTS,
    ),
    _query(
        "get_all_registered_students_for_placement",
        "/placement/{id}/registered-students",
        TagRef("Placements", "id"),
    ),
    _mutation(
        "register_for_placement",
        "POST",
        "/placement/{id}/register",
        TagRef("Placements", "id"),
        PLACEMENTS,
        multipart=True,
    ),
    _query("get_all_placements_for_student", "/placement/student/all", PLACEMENTS),
    _query("get_placement_details", "/placement/{id}", TagRef("Placements", "id")),
    _mutation("delete_placement", "DELETE", "/placement/{id}", PLACEMENTS),
)

REGISTRY: Mapping[str, Endpoint] = MappingProxyType(
    {endpoint.name: endpoint for endpoint in ENDPOINTS}
)


def get_endpoint(name: str) -> Endpoint:
    """Look up an endpoint by operation name."""
    try:
        return REGISTRY[name]
    except KeyError:
        raise KeyError(f"Unknown endpoint: {name!r}") from None


__all__ = [
    "ENDPOINTS",
    "REGISTRY",
    "USER_SCOPED",
    "Endpoint",
    "SessionEffect",
    "TagRef",
    "get_endpoint",
]
