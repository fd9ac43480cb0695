from flask import Blueprint, request, jsonify, current_app, g

from models import db
from models.user import User, Role
from security.password import hash_password, verify_password
from security.session import start_session, end_session
from services.availability import EMAIL_RE, normalize_email
from utils.audit import log_event
from utils.auth_context import login_required


auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

MIN_PASSWORD_LENGTH = 8


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""
    full_name = (data.get("full_name") or "").strip() or None

    if not EMAIL_RE.match(email) or len(email) > 255:
        return jsonify(success=False, message="Invalid email"), 400
    if len(password) < MIN_PASSWORD_LENGTH:
        return jsonify(success=False, message=f"Password must be at least {MIN_PASSWORD_LENGTH} characters"), 400

    if User.query.filter_by(email=email).first():
        return jsonify(success=False, message="Email already registered"), 409

    user = User(email=email, password_hash=hash_password(password), full_name=full_name)
    user_role = Role.query.filter_by(name="USER").first()
    if user_role:
        user.roles.append(user_role)
    db.session.add(user)
    db.session.commit()

    log_event("REGISTER_SUCCESS", user_id=user.id)
    return jsonify(success=True, message="Registered successfully", id=user.id), 201


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""

    user = User.query.filter_by(email=email).first()
    if not user or not verify_password(password, user.password_hash):
        log_event("LOGIN_FAIL", user_id=user.id if user else None, metadata={"email": email})
        return jsonify(success=False, message="Invalid credentials"), 401

    raw_token = start_session(user.id)
    resp = jsonify(success=True, message="Login OK")
    resp.set_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        raw_token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=current_app.config.get("SESSION_LIFETIME_SECONDS"),
        path="/",
    )

    log_event("LOGIN_SUCCESS", user_id=user.id)
    return resp, 200


@auth_bp.post("/logout")
@login_required
def logout():
    cookie_name = current_app.config["AUTH_COOKIE_NAME"]
    end_session(request.cookies.get(cookie_name))
    log_event("LOGOUT", user_id=g.user.id)

    resp = jsonify(success=True, message="Logged out")
    resp.delete_cookie(cookie_name, path="/")
    return resp, 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(
        id=g.user.id,
        email=g.user.email,
        full_name=g.user.full_name,
        roles=g.user.role_names,
    ), 200
