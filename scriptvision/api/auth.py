"""
JWT authentication for the ScriptVision API.

Tokens are HS256 by default and carry the user id in `userId`, `id` or
`sub`. The streaming leg accepts the token as a query parameter because
event-stream clients cannot always set headers.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Header, Request

from scriptvision.core.config import AuthConfig
from scriptvision.core.env_loader import get_jwt_secret
from scriptvision.core.exceptions import AuthenticationError, MissingConfigError
from scriptvision.core.logging_config import get_logger

logger = get_logger("api.auth")

USER_ID_CLAIMS = ("userId", "id", "sub")


def _secret(config: AuthConfig) -> str:
    secret = get_jwt_secret(config.jwt_secret_env)
    if not secret:
        raise MissingConfigError(f"{config.jwt_secret_env} is not set")
    return secret


def create_access_token(
    user_id: str,
    config: Optional[AuthConfig] = None,
    expires_minutes: Optional[int] = None,
    extra_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """Issue a signed access token for a user id."""
    config = config or AuthConfig()
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user_id,
        "iat": now,
        "exp": now + timedelta(minutes=expires_minutes or config.access_token_minutes),
        "type": "access",
    }
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, _secret(config), algorithm=config.algorithm)


def decode_access_token(token: str, config: Optional[AuthConfig] = None) -> Dict[str, Any]:
    """
    Verify a token and return its payload.

    Raises:
        AuthenticationError: expired, malformed or wrongly signed token
    """
    config = config or AuthConfig()
    try:
        return jwt.decode(token, _secret(config), algorithms=[config.algorithm])
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise AuthenticationError(f"Invalid token: {e}")


def user_id_from_payload(payload: Dict[str, Any]) -> str:
    for claim in USER_ID_CLAIMS:
        value = payload.get(claim)
        if value:
            return str(value)
    raise AuthenticationError("Token does not identify a user")


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an 'Authorization: Bearer ...' header."""
    if not authorization:
        return None
    if not authorization.startswith("Bearer "):
        raise AuthenticationError("Invalid token format")
    return authorization[len("Bearer "):].strip() or None


def authenticate(token: Optional[str], config: Optional[AuthConfig] = None) -> str:
    """Return the user id for a token or raise AuthenticationError."""
    if not token:
        raise AuthenticationError("No token provided")
    return user_id_from_payload(decode_access_token(token, config))


def resolve_stream_user(
    query_token: Optional[str],
    authorization: Optional[str],
    config: Optional[AuthConfig] = None,
) -> str:
    """Query-parameter token first, then the Authorization header."""
    token = query_token or bearer_token(authorization)
    return authenticate(token, config)


async def get_current_user(request: Request, authorization: Optional[str] = Header(None)) -> str:
    """FastAPI dependency for bearer-authenticated routes. Failures map to 401."""
    config: AuthConfig = request.app.state.config.auth
    try:
        return authenticate(bearer_token(authorization), config)
    except AuthenticationError as e:
        logger.warning(f"Auth error on {request.url.path}: {e.message}")
        raise
