"""
routes/users.py — User profile endpoints that consume the caller's Identity.

Endpoints (url_prefix=/api/v1/user):
  GET    /user/viewAll   → 200  (OPTIONAL auth)
  PUT    /user/me        → 200  (auth required)
  DELETE /user/<id>      → 200  (auth required, admin only)
"""

from __future__ import annotations

from flask import Blueprint, jsonify, request

from neighborhub.app.extensions import db
from neighborhub.app.middleware.auth_middleware import require_identity
from neighborhub.app.schemas.auth_schema import UpdateProfileSchema
from neighborhub.app.services import user_service

users_bp = Blueprint("users", __name__)


@users_bp.route("/viewAll", methods=["GET"])
def view_all():
    result = user_service.list_users(session=db.session)
    return jsonify({"data": result, "warnings": []}), 200


@users_bp.route("/me", methods=["PUT"])
def update_me():
    changes = UpdateProfileSchema().load(request.get_json(force=True, silent=True) or {})
    result = user_service.update_profile(
        identity=require_identity(),
        changes=changes,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": result, "warnings": []}), 200


@users_bp.route("/<int:user_id>", methods=["DELETE"])
def delete_user(user_id: int):
    user_service.delete_user(
        identity=require_identity(),
        user_id=user_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({"data": {"message": "User deleted successfully."}, "warnings": []}), 200
