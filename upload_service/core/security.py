from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
from jwt import InvalidTokenError, ExpiredSignatureError
from upload_service.core.config import Settings
from typing import Dict, Any
import logging

logger = logging.getLogger(__name__)

security = HTTPBearer()


def decode_token(token: str, settings: Settings) -> Dict[str, Any]:
    options = {
        "verify_aud": settings.EXPECTED_JWT_AUDIENCE is not None,
        "verify_iss": settings.EXPECTED_JWT_ISSUER is not None,
    }
    return jwt.decode(
        token,
        settings.JWT_SECRET_KEY,
        algorithms=[settings.JWT_ALGORITHM],
        audience=settings.EXPECTED_JWT_AUDIENCE,
        issuer=settings.EXPECTED_JWT_ISSUER,
        options=options,
    )


def get_jwt_payload(
    request: Request,
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Dict[str, Any]:
    """
    Returns the full JWT payload
    """
    try:
        return decode_token(credentials.credentials, request.app.state.settings)
    except ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired.")
    except InvalidTokenError as e:
        logger.debug(f"Rejected token: {e}")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token.")


def get_current_user_id(payload: Dict[str, Any] = Depends(get_jwt_payload)) -> str:
    # tokens issued by the main platform carry the user id as "id"
    user_id = payload.get("sub") or payload.get("id")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid token: missing sub.")
    return str(user_id)
