import logging
from flask import Blueprint, current_app, jsonify, request, g

from whisperwalls import accounts, discovery, reactions, whispers
from whisperwalls.exceptions import AlreadyReacted, ValidationError
from whisperwalls.extensions import limiter
from whisperwalls.models import UnlockPolicy
from whisperwalls.routes.helpers import json_body, optional_auth
from whisperwalls.utils import parse_coordinates, parse_positive, parse_seconds

logger = logging.getLogger(__name__)

whispers_bp = Blueprint('whispers', __name__, url_prefix='/api/whispers')


def _location(data):
    location = data.get("location", data.get("coordinates"))
    if location is None:
        raise ValidationError("location is required")
    return location


def _policy(data):
    conditions = data.get("unlockConditions")
    if conditions is None:
        return None
    if not isinstance(conditions, dict):
        raise ValidationError("unlockConditions must be an object")
    defaults = whispers.default_policy()
    return UnlockPolicy(
        parse_positive(
            conditions.get("proximityRequired"), "proximityRequired",
            defaults.proximity_required, current_app.config["MAX_PROXIMITY_METERS"],
        ),
        parse_seconds(
            conditions.get("dwellTime"), "dwellTime",
            defaults.dwell_time, current_app.config["MAX_DWELL_SECONDS"],
        ),
    )


@whispers_bp.route("", methods=["POST"])
@limiter.limit("30 per minute")
@optional_auth
def create():

    data = json_body()
    whisper = whispers.create_whisper(
        data.get("text"),
        data.get("tone"),
        _location(data),
        data.get("sessionId"),
        why_here=data.get("whyHere"),
        account_id=g.account_id,
        policy=_policy(data),
    )
    return jsonify(whisper.to_dict()), 201


@whispers_bp.route("/nearby", methods=["GET"])
@limiter.limit("120 per minute")
def nearby():

    try:
        center = parse_coordinates({
            "latitude": float(request.args["lat"]),
            "longitude": float(request.args["lng"]),
        })
    except (KeyError, ValueError):
        raise ValidationError("Latitude and longitude required") from None

    radius = parse_positive(
        request.args.get("radius"), "radius",
        current_app.config["DEFAULT_QUERY_RADIUS"], current_app.config["MAX_QUERY_RADIUS"],
    )
    limit = int(parse_positive(
        request.args.get("limit"), "limit",
        current_app.config["DEFAULT_QUERY_LIMIT"], current_app.config["MAX_QUERY_LIMIT"],
    ))

    found = whispers.query_nearby(center, radius, limit)
    return jsonify([w.to_dict() for w in found])


@whispers_bp.route("/<whisper_id>", methods=["GET"])
@limiter.limit("120 per minute")
def get(whisper_id):

    return jsonify(whispers.get_whisper(whisper_id).to_dict())


@whispers_bp.route("/<whisper_id>/arrive", methods=["POST"])
@limiter.limit("60 per minute")
def arrive(whisper_id):

    data = json_body()
    arrived_at = discovery.record_arrival(whisper_id, data.get("sessionId"), _location(data))
    return jsonify({
        "arrivedAt": arrived_at,
        "dwellSatisfied": discovery.dwell_satisfied(whisper_id, data.get("sessionId")),
    })


@whispers_bp.route("/<whisper_id>/discover", methods=["POST"])
@limiter.limit("60 per minute")
@optional_auth
def discover(whisper_id):

    data = json_body()
    first = discovery.record_discovery(
        whisper_id,
        data.get("sessionId"),
        account_id=g.account_id,
        location=data.get("location"),
        enforce_dwell=current_app.config["ENFORCE_DWELL_TIME"],
    )
    return jsonify({"success": True, "firstDiscovery": first})


@whispers_bp.route("/<whisper_id>/react", methods=["POST"])
@limiter.limit("60 per minute")
@optional_auth
def react(whisper_id):

    data = json_body()
    added = reactions.add_reaction(
        whisper_id,
        data.get("sessionId"),
        account_id=g.account_id,
        reaction_type=data.get("type", "hug"),
    )
    if not added:
        raise AlreadyReacted("Already reacted to this whisper")
    return jsonify({"success": True})


@whispers_bp.route("/user/<session_id>", methods=["GET"])
@limiter.limit("60 per minute")
@optional_auth
def created_by(session_id):

    found = accounts.list_created(session_id, account_id=g.account_id)
    return jsonify([w.to_dict() for w in found])


@whispers_bp.route("/discovered/<session_id>", methods=["GET"])
@limiter.limit("60 per minute")
@optional_auth
def discovered_by(session_id):

    found = accounts.list_discovered(session_id, account_id=g.account_id)
    return jsonify([w.to_dict() for w in found])
