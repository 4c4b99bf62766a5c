"""
Bearer token handling for API requests.

Tokens are issued by the login flow (outside this service) and carry the
caller's user_id; the API only needs to mint them in tests and verify them
on every request.
"""

import os
from datetime import timedelta
from typing import Dict, Optional
import jwt
from dotenv import load_dotenv
from cove.utils.datetime_utils import utcnow
import logging

load_dotenv()

logger = logging.getLogger(__name__)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRATION_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRATION_MINUTES", "60"))


def create_access_token(data: Dict, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a signed access token.

    Args:
        data: Claims to embed (must include user_id for API use)
        expires_delta: Lifetime override (defaults to ACCESS_TOKEN_EXPIRATION_MINUTES)

    Returns:
        Encoded JWT string
    """
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRATION_MINUTES))
    to_encode["exp"] = expire
    return jwt.encode(to_encode, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def verify_token(token: str) -> Optional[Dict]:
    """
    Decode and validate an access token.

    Returns:
        The claims dict, or None if the token is malformed, tampered with or expired
    """
    try:
        return jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        logger.debug("Rejected expired access token")
        return None
    except jwt.InvalidTokenError:
        logger.debug("Rejected invalid access token")
        return None
