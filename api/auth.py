"""
Authentication blueprint:
- POST /api/v1/users/register
- POST /api/v1/users/login
- POST /api/v1/users/refresh
- POST /api/v1/users/logout

The implementation:
- Uses argon2 for password hashing (via utils.security)
- Issues 15-minute HS256 access tokens and 7-day opaque refresh tokens
- Stores refresh tokens in the DB so logout can revoke them
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify, current_app

from models.schemas.user import RefreshTokenSchema, UserCreateSchema, UserLoginSchema, UserOutSchema
from services.errors import InvalidTokenError, TokenExpiredError
from services.session_manager import SessionManager


bp = Blueprint("auth", __name__)

user_create_schema = UserCreateSchema()
user_out_schema = UserOutSchema()
user_login_schema = UserLoginSchema()
refresh_token_schema = RefreshTokenSchema()


def get_session_manager() -> SessionManager:
    return current_app.extensions["session_manager"]


def json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


@bp.post("/register")
def register():
    """
    Register a new user (role "user").
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [email, password, first_name, last_name]
          properties:
            email: { type: string }
            password: { type: string, minLength: 8 }
            first_name: { type: string }
            last_name: { type: string }
    responses:
      201:
        description: Created
      400:
        description: Validation error
      409:
        description: Email already registered
    """
    data = user_create_schema.load(json_body())
    user = get_session_manager().register(
        data["email"], data["password"], data["first_name"], data["last_name"]
    )
    return jsonify(user_out_schema.dump(user)), 201


@bp.post("/login")
def login():
    """
    Login: return access_token and refresh_token
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [email, password]
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens and the user profile)
      401:
        description: Invalid email or password
    """
    data = user_login_schema.load(json_body())
    manager = get_session_manager()
    result = manager.login(data["email"], data["password"])
    return jsonify(
        {
            "access_token": result.access_token,
            "refresh_token": result.refresh_token,
            "token_type": "bearer",
            "expires_in": int(manager.issuer.access_token_lifetime.total_seconds()),
            "user": user_out_schema.dump(result.user),
        }
    ), 200


@bp.post("/refresh")
def refresh():
    """
    Use a refresh token to obtain a new access token (no rotation)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [refresh_token]
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: OK (returns a new access token)
      401:
        description: Invalid refresh token
    """
    data = refresh_token_schema.load(json_body())
    manager = get_session_manager()
    try:
        access_token = manager.refresh(data["refresh_token"])
    except TokenExpiredError:
        # expired, revoked and unknown look the same from outside
        raise InvalidTokenError("invalid refresh token")
    except InvalidTokenError:
        raise InvalidTokenError("invalid refresh token")
    return jsonify(
        {
            "access_token": access_token,
            "token_type": "bearer",
            "expires_in": int(manager.issuer.access_token_lifetime.total_seconds()),
        }
    ), 200


@bp.post("/logout")
def logout():
    """
    Logout: revokes the refresh token. Idempotent.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [refresh_token]
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: Logged out (also for unknown or already revoked tokens)
      400:
        description: Validation error
    """
    data = refresh_token_schema.load(json_body())
    get_session_manager().logout(data["refresh_token"])
    return jsonify({"message": "logged out successfully"}), 200
