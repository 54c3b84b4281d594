"""Rate limiter for API endpoints, keyed per authenticated user where possible."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from app.auth.jwt import get_subject_from_access


def user_or_remote_address(request: Request) -> str:
    """Bearer token subject if the token is valid, else the client address."""
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        user_id = get_subject_from_access(auth[7:].strip())
        if user_id:
            return f"user:{user_id}"
    return get_remote_address(request)


limiter = Limiter(key_func=user_or_remote_address)
