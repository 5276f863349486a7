"""Portal trust and session core."""

from bizportal.domain.portal.core import PortalCore, build_portal_core
from bizportal.domain.portal.invites import IssuedInvite
from bizportal.domain.portal.sessions import IssuedSession

__all__ = [
    "IssuedInvite",
    "IssuedSession",
    "PortalCore",
    "build_portal_core",
]
