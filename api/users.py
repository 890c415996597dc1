from __future__ import annotations

from flask import Blueprint, jsonify

from models.schemas.user import RoleUpdateSchema, UserOutSchema
from models.user import ROLE_ADMIN
from utils.decorators import Identity, jwt_required, roles_required

from .auth import json_body, get_session_manager

bp = Blueprint("users", __name__)

user_out_schema = UserOutSchema()
role_update_schema = RoleUpdateSchema()


@bp.get("/profile")
@jwt_required()
def profile(identity: Identity):
    """
    Get current user info.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    user = get_session_manager().get_user(identity.user_id)
    return jsonify(user_out_schema.dump(user)), 200


@bp.get("/<user_id>")
@roles_required([ROLE_ADMIN])
def get_user(user_id: str, identity: Identity):
    """
    Admin-only: fetch any user's profile.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      -  in: path
         name: user_id
         type: string
         required: true
    responses:
      200: { description: OK }
      403: { description: Forbidden }
      404: { description: Not found }
    """
    user = get_session_manager().get_user(user_id)
    return jsonify(user_out_schema.dump(user)), 200


@bp.put("/<user_id>/role")
@roles_required([ROLE_ADMIN])
def set_role(user_id: str, identity: Identity):
    """
    Admin-only: set a user's role. Applies from the user's next refresh.
    Body: { "role": "admin" | "user" }
    ---
    tags:
      - Users
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: path
         name: user_id
         type: string
         required: true
      -  in: body
         name: body
         schema:
           type: object
           required: [role]
           properties:
             role: { type: string, enum: [user, admin] }
    responses:
      200: { description: OK }
      400: { description: Validation error }
      403: { description: Forbidden }
      404: { description: Not found }
    """
    data = role_update_schema.load(json_body())
    user = get_session_manager().set_role(user_id, data["role"])
    return jsonify(user_out_schema.dump(user)), 200
