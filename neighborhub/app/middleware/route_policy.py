"""
middleware/route_policy.py — Declared authentication policy per route.

The rule table is evaluated top to bottom in a before_request hook; the
first rule whose method set and path pattern match decides the policy.
Requests that match no rule are AUTHENTICATED.

Policies:
  PUBLIC        — no token processing at all. Used by the auth endpoints
                  that read the Authorization header themselves.
  OPTIONAL      — a bearer token, if present, must be valid; requests
                  without one pass through unauthenticated.
  AUTHENTICATED — a valid bearer token is required.
"""

from __future__ import annotations

import fnmatch
from dataclasses import dataclass
from typing import Callable

from flask import Flask, g, request

PUBLIC = "public"
OPTIONAL = "optional"
AUTHENTICATED = "authenticated"

# Flask answers HEAD for every GET route, so both share a policy.
_READ = frozenset({"GET", "HEAD"})


@dataclass(frozen=True)
class RouteRule:
    methods: frozenset
    pattern: str
    policy: str

    def matches(self, method: str, path: str) -> bool:
        if self.methods and method not in self.methods:
            return False
        return fnmatch.fnmatchcase(path, self.pattern)


ROUTE_RULES: tuple[RouteRule, ...] = (
    RouteRule(frozenset({"POST"}), "/api/v1/auth/login", PUBLIC),
    RouteRule(frozenset({"POST"}), "/api/v1/auth/signup", PUBLIC),
    RouteRule(frozenset({"POST"}), "/api/v1/auth/refresh-token", PUBLIC),
    RouteRule(frozenset({"POST"}), "/api/v1/auth/logout", PUBLIC),
    RouteRule(_READ, "/api/v1/auth/me", AUTHENTICATED),
    RouteRule(_READ, "/api/v1/*", OPTIONAL),
    # CORS preflight never carries credentials.
    RouteRule(frozenset({"OPTIONS"}), "*", PUBLIC),
)


def resolve_policy(
        method: str,
        path: str,
        rules: tuple[RouteRule, ...] = ROUTE_RULES,
) -> str:
    for rule in rules:
        if rule.matches(method, path):
            return rule.policy
    return AUTHENTICATED


def register_route_policy(
        app: Flask,
        authenticate: Callable[[], object],
        rules: tuple[RouteRule, ...] = ROUTE_RULES,
) -> None:
    """
    Installs the policy chain on `app`.

    `authenticate` runs the RequestAuthenticator for the current request
    and raises AppError on failure.
    """

    @app.before_request
    def enforce_route_policy():
        g.identity = None
        policy = resolve_policy(request.method, request.path, rules)
        if policy == PUBLIC:
            return None
        if policy == OPTIONAL and not request.headers.get("Authorization"):
            return None
        authenticate()
        return None
