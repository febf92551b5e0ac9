from functools import wraps

from flask import current_app, g, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from movie_catalog.errors import AuthError
from movie_catalog.models import User, get_db_session

TOKEN_SALT = "movie-catalog-auth"


def _serializer() -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=TOKEN_SALT)


def issue_token(user: User) -> str:
    """Sign a bearer token for ``user``"""
    return _serializer().dumps({"id": user.id})


def verify_token(token: str, session) -> dict:
    """Resolve a bearer token to the principal of a still-existing user"""
    max_age = current_app.config["TOKEN_MAX_AGE"]
    try:
        payload = _serializer().loads(token, max_age=max_age)
    except SignatureExpired:
        raise AuthError("Token expired. Please log in again.")
    except BadSignature:
        raise AuthError("Invalid token.")

    user = session.get(User, payload.get("id"))
    if user is None:
        raise AuthError("User no longer exists.")
    return user.to_principal()


def login_required(view):
    """Require a valid ``Authorization: Bearer`` header; sets ``g.current_user``"""

    @wraps(view)
    def wrapped(*args, **kwargs):
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthError("Unauthorized. Missing bearer token.")

        session = get_db_session()
        try:
            g.current_user = verify_token(token.strip(), session)
        finally:
            session.close()
        return view(*args, **kwargs)

    return wrapped
