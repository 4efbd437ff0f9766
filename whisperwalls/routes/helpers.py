from functools import wraps

from flask import g, request, session

from whisperwalls.exceptions import AuthenticationRequired, ValidationError
from whisperwalls.identity import validate_token


def bearer_token():
    """Token from the Authorization header, falling back to the server-side session."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return session.get("token")


def require_auth(f):

    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        account_id = validate_token(token)
        if not account_id:
            raise AuthenticationRequired()

        g.token = token
        g.account_id = account_id
        return f(*args, **kwargs)

    return decorated_function


def optional_auth(f):
    """Like ``require_auth`` but lets anonymous requests through with no account."""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        g.token = token
        g.account_id = validate_token(token) if token else None
        return f(*args, **kwargs)

    return decorated_function


def json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("No data provided")
    return data
