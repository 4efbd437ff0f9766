import logging
from flask import Blueprint, jsonify, session, g

from whisperwalls import accounts, linkage
from whisperwalls.extensions import limiter
from whisperwalls.routes.helpers import require_auth

logger = logging.getLogger(__name__)

account_bp = Blueprint('account', __name__, url_prefix='/api/account')


@account_bp.route("/reset", methods=["POST"])
@limiter.limit("5 per minute")
@require_auth
def reset():

    deleted = accounts.reset_account_content(g.account_id)
    return jsonify({"message": "User data reset successfully", "deletedWhispers": deleted})


@account_bp.route("", methods=["DELETE"])
@limiter.limit("5 per minute")
@require_auth
def delete():

    accounts.delete_account(g.account_id)
    session.clear()
    return jsonify({"message": "Account deleted successfully"})


@account_bp.route("/reconcile", methods=["POST"])
@limiter.limit("10 per minute")
@require_auth
def reconcile():

    result = linkage.reconcile_account(g.account_id)
    return jsonify(result)
