from itsdangerous import BadData, SignatureExpired, URLSafeTimedSerializer

from config import get_settings
from errors import InvalidToken


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.token_secret, salt="access-token")


def issue_access_token(user_id: int) -> str:
    if not user_id:
        raise InvalidToken("User ID is required")
    return _serializer().dumps({"u": user_id})


def verify_access_token(token: str) -> int:
    """Return the user id carried by a signed, unexpired token."""
    settings = get_settings()
    try:
        data = _serializer().loads(token, max_age=settings.token_max_age_secs)
    except SignatureExpired as exc:
        raise InvalidToken("Token has expired") from exc
    except BadData as exc:
        raise InvalidToken("Token signature is invalid") from exc

    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, int) or user_id <= 0:
        raise InvalidToken("Token does not identify a user")
    return user_id
