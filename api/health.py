from flask import Blueprint, current_app

bp = Blueprint("health", __name__)

VERSION = "1.0.0"


@bp.get("/health")
def health():
    """
    Health check
    ---
    tags:
      - Health
    responses:
      200:
        description: API is up
        schema:
          type: object
          properties:
            status:
              type: string
              example: ok
            version:
              type: string
              example: 1.0.0
            database:
              type: string
              example: ok
    """
    storage = current_app.extensions["storage"]
    database = "ok" if storage.ping() else "unavailable"
    return {"status": "ok", "version": VERSION, "database": database}, 200
