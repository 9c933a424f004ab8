"""Operator token generation and validation

Operator tokens are HS256 JWTs issued at login. The token itself is also
the key of the operator's entry in the session registry, so a token is only
usable while both its signature/expiry are valid AND its session is live.

JWT Token Claims Structure:
===========================

Standard JWT Claims:
- iat (Issued At): Unix timestamp when token was created
- exp (Expiration): Unix timestamp when token expires
  (iat + JWT_EXPIRY_MINUTES, default 50 minutes, matching the session TTL)

Custom Claims:
- username: ERP login name as typed by the operator
- codusu: ERP user id (CODUSU); attributes every transaction
- jti: random id, keeps two logins within the same second distinct

Example Token Payload:
{
  "username": "JOAO",
  "codusu": 42,
  "iat": 1704368400,
  "exp": 1704371400,
  "jti": "9f1c..."
}
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict
from uuid import uuid4

import jwt

from config import get_settings


def _get_jwt_secret() -> str:
    """Get the signing secret.

    Raises:
        ValueError: If JWT_SECRET is empty
    """
    secret = get_settings().JWT_SECRET
    if not secret:
        raise ValueError("JWT_SECRET is not set")
    return secret


def _get_jwt_expiry_minutes() -> int:
    return get_settings().JWT_EXPIRY_MINUTES


def _get_jwt_algorithm() -> str:
    return get_settings().JWT_ALGORITHM


def create_access_token(username: str, operator_id: int) -> str:
    """Create a signed operator token.

    Args:
        username: ERP login name
        operator_id: ERP user id (CODUSU)

    Returns:
        str: Signed JWT token
    """
    now = datetime.now(timezone.utc)
    expiration = now + timedelta(minutes=_get_jwt_expiry_minutes())

    payload = {
        'username': username,
        'codusu': operator_id,
        'iat': int(now.timestamp()),
        'exp': int(expiration.timestamp()),
        'jti': uuid4().hex,
    }
    return jwt.encode(payload, _get_jwt_secret(), algorithm=_get_jwt_algorithm())


def decode_token(token: str) -> Dict[str, Any]:
    """Decode and validate an operator token.

    Raises:
        jwt.ExpiredSignatureError: If token has expired
        jwt.InvalidTokenError: If token is invalid, tampered, or lacks codusu
    """
    try:
        payload = jwt.decode(token, _get_jwt_secret(), algorithms=[_get_jwt_algorithm()])
    except jwt.ExpiredSignatureError:
        raise jwt.ExpiredSignatureError("Token has expired")
    except jwt.InvalidTokenError as e:
        raise jwt.InvalidTokenError(f"Invalid token: {str(e)}")

    if not isinstance(payload.get('codusu'), (int, float)) or isinstance(payload.get('codusu'), bool):
        raise jwt.InvalidTokenError("Invalid token: codusu claim missing")
    return payload
