import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import jwt
from jose.exceptions import JOSEError

from config import SECRET_KEY, ALGORITHM, JWT_AUDIENCE

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> str:
    """
    Verifies the access token issued by the hosted auth backend and returns
    the user id (the 'sub' claim). There is no local users table.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Session expired. Please re-login.",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None or not credentials.credentials:
        raise credentials_exception
    if not SECRET_KEY:
        logger.critical("[Auth] SECRET_KEY is not configured; rejecting all tokens")
        raise credentials_exception

    try:
        payload = jwt.decode(
            credentials.credentials,
            SECRET_KEY,
            algorithms=[ALGORITHM],
            audience=JWT_AUDIENCE,
        )
    except JOSEError as e:
        # This handles ExpiredSignatureError and other JWT issues
        logger.info(f"[Auth] Rejected token: {e}")
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception
    return str(user_id)
