from flask import Blueprint, jsonify

from whisperwalls.database import timestamp

system_bp = Blueprint('system', __name__)


@system_bp.route("/api/health")
def health():

    return jsonify({"status": "ok", "timestamp": timestamp()})
