"""
routes/auth.py — Authentication route handlers.

Layer rules:
  - Parse request body / headers
  - Validate with the appropriate schema (raises ValidationError on bad input)
  - Call exactly ONE service function
  - Commit the DB session
  - Return the standard response envelope: {"data": {...}, "warnings": []}

No business logic here. No DB queries.
AppError propagates to the global error handler in app/__init__.py; routes
never catch it.

Endpoints (url_prefix=/api/v1/auth):
  POST   /auth/signup         → 200
  POST   /auth/login          → 200
  POST   /auth/refresh-token  → 200  (Bearer <refresh token>)
  POST   /auth/logout         → 200  (Bearer <access token>)
  GET    /auth/me             → 200

Token pairs are returned inside "data" with snake_case keys, like every
other field of the API: {"access_token": "...", "refresh_token": "..."}.
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from neighborhub.app.extensions import db
from neighborhub.app.middleware.auth_middleware import require_identity
from neighborhub.app.schemas.auth_schema import LoginSchema, SignupSchema
from neighborhub.app.services import auth_service

auth_bp = Blueprint("auth", __name__)


@auth_bp.route("/signup", methods=["POST"])
def signup():
    """POST /auth/signup — Create account. (No auth required.)"""
    data = SignupSchema().load(request.get_json(force=True, silent=True) or {})
    result = auth_service.register_user(
        username=data["username"],
        email=data["email"],
        phone=data["phone"],
        secret=data["secret"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/login", methods=["POST"])
def login():
    """POST /auth/login — Authenticate; return tokens. (No auth required.)"""
    data = LoginSchema().load(request.get_json(force=True, silent=True) or {})
    result = auth_service.login_user(
        identifier=data["identifier"],
        secret=data["secret"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/refresh-token", methods=["POST"])
def refresh_token():
    """POST /auth/refresh-token — Exchange the Bearer refresh token for a new access token."""
    result = auth_service.refresh_access_token(
        auth_header=request.headers.get("Authorization"),
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@auth_bp.route("/logout", methods=["POST"])
def logout():
    """POST /auth/logout — Revoke the Bearer access token and its refresh token."""
    auth_service.logout_user(
        auth_header=request.headers.get("Authorization"),
        session=db.session,
    )
    db.session.commit()
    g.pop("identity", None)
    return jsonify({"data": {"message": "Logged out successfully."}, "warnings": []}), 200


@auth_bp.route("/me", methods=["GET"])
def me():
    """GET /auth/me — Return current user profile. (Auth required.)"""
    result = auth_service.get_current_user(
        identity=require_identity(),
        session=db.session,
    )
    return jsonify({"data": result, "warnings": []}), 200
