"""
Authentication Routes (JSON)

Provides:
- GET  /auth/csrf-token  token for cookie-authenticated mutating requests
- POST /auth/login
- POST /auth/logout
- POST /auth/seed-admin  (first system bootstrap)
- GET  /auth/me

Rules:
- Only active users may log in.
- Credentials validated via password hash.
- seed-admin works only while the users table is empty.
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from ...audit import log_action
from ...extensions import db
from ...models import User

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def _credentials():
    """Read username/password from a JSON body, falling back to form fields."""
    data = request.get_json(silent=True) or request.form
    return (data.get("username") or "").strip(), data.get("password") or ""


def _user_dict(user: User) -> dict:
    return {"id": user.id, "username": user.username, "role": user.role, "is_active": user.is_active}


# ============================================================
# CSRF
# ============================================================

@auth_bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    username, password = _credentials()

    user = User.query.filter_by(username=username).first()

    if not user or not user.check_password(password):
        logger.warning("Failed login for %r from %s", username, request.remote_addr)
        return jsonify({"error": "invalid_credentials", "message": "Wrong username or password."}), 401

    if not user.is_active:
        return jsonify({"error": "inactive_user", "message": "This account is disabled."}), 403

    login_user(user)
    logger.info("User %s logged in", user.username)
    return jsonify(_user_dict(user))


# ============================================================
# LOGOUT
# ============================================================

@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Log out the current user."""
    logout_user()
    return jsonify({"status": "logged_out"})


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify(_user_dict(current_user))


# ============================================================
# SEED FIRST ADMIN (BOOTSTRAP)
# ============================================================

@auth_bp.route("/seed-admin", methods=["POST"])
def seed_admin():
    """
    Bootstrap the FIRST admin of the system.

    If ANY user already exists the request is refused.
    """
    if User.query.count() > 0:
        return jsonify({"error": "already_seeded", "message": "A user already exists."}), 409

    username, password = _credentials()
    if not username or not password:
        return jsonify({"error": "missing_credentials", "message": "Username and password are required."}), 400

    user = User(username=username, role="admin", is_active=True)
    user.set_password(password)

    db.session.add(user)
    db.session.flush()
    log_action(user, "CREATE", after={"username": user.username, "role": user.role}, actor=user)
    db.session.commit()

    logger.info("Bootstrap admin %s created", user.username)
    return jsonify(_user_dict(user)), 201
