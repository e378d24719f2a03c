"""
security/identity.py — The resolved caller identity of a request.

The authenticator builds an Identity and stores it on flask.g for the
duration of the request. Routes read it from there and hand it to service
functions as a plain argument; services never touch flask.g.
"""

from __future__ import annotations

from dataclasses import dataclass

from neighborhub.app.models.user import ROLE_ADMIN


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN
