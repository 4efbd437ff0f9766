import logging
from flask import Blueprint, jsonify, session, g
from flask_limiter.util import get_remote_address

from whisperwalls import accounts, identity
from whisperwalls.database import (
    is_ip_locked, increment_ip_failed_attempt, reset_ip_failed_login
)
from whisperwalls.exceptions import DuplicatePrincipal, InvalidCredentials, IPLocked, ValidationError
from whisperwalls.extensions import limiter
from whisperwalls.routes.helpers import json_body, require_auth

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/auth')


def _check_ip():
    ip_address = get_remote_address()
    if is_ip_locked(ip_address):
        logger.warning(f"Request from locked IP: {ip_address}")
        raise IPLocked()
    return ip_address


@auth_bp.route("/anonymous-session", methods=["POST"])
@limiter.limit("30 per minute")
def anonymous_session():
    session_id = identity.create_anonymous_session()
    return jsonify({"sessionId": session_id}), 201


@auth_bp.route("/session/reset", methods=["POST"])
@limiter.limit("10 per minute")
def reset_session():
    data = json_body()
    new_session_id = identity.reset_session(data.get("sessionId"))
    return jsonify({"sessionId": new_session_id})


@auth_bp.route("/register", methods=["POST"])
@limiter.limit("5 per minute")
def register():

    ip_address = _check_ip()
    data = json_body()

    try:
        account_id = identity.register(
            data.get("username"),
            data.get("email"),
            data.get("password"),
            display_name=data.get("displayName"),
            session_id=data.get("sessionId"),
        )
    except (ValidationError, DuplicatePrincipal):
        increment_ip_failed_attempt(ip_address)
        raise

    reset_ip_failed_login(ip_address)
    token = identity.issue_token(account_id)
    session['token'] = token
    session.permanent = True

    return jsonify({
        "message": "User created successfully",
        "user": accounts.get_account(account_id).to_dict(),
        "token": token,
    }), 201


@auth_bp.route("/login", methods=["POST"])
@limiter.limit("10 per minute")
def login():

    ip_address = _check_ip()
    data = json_body()

    try:
        account_id, token = identity.authenticate(
            data.get("email"), data.get("password"), session_id=data.get("sessionId")
        )
    except InvalidCredentials:
        increment_ip_failed_attempt(ip_address)
        raise

    reset_ip_failed_login(ip_address)
    session['token'] = token
    session.permanent = True

    return jsonify({
        "message": "Login successful",
        "user": accounts.get_account(account_id).to_dict(),
        "token": token,
    })


@auth_bp.route("/logout", methods=["POST"])
@limiter.limit("10 per minute")
@require_auth
def logout():

    identity.invalidate_token(g.token)
    session.clear()

    logger.info(f"Account {g.account_id} logged out successfully")
    return jsonify({"message": "Logout successful"})


@auth_bp.route("/profile", methods=["GET"])
@limiter.limit("30 per minute")
@require_auth
def profile():

    return jsonify({"user": accounts.get_profile(g.account_id).to_dict()})
