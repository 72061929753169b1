import logging

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.chat.service import ChatService
from app.core.config import Settings, get_settings
from app.friendship.service import RelationshipService
from app.profiles.service import ProfileService


logger = logging.getLogger(__name__)
security = HTTPBearer()


def verify_token(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    settings: Settings = Depends(get_settings),
):
    token = credentials.credentials

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SIGN_KEY,
            algorithms=["HS256"],
            issuer=settings.jwt_issuer,
            options={"verify_aud": False},
            leeway=60,
        )
        return payload

    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")

    except jwt.InvalidTokenError as e:
        logger.info(f"jwt_verification_failed error={e}")
        raise HTTPException(status_code=401, detail="Invalid token")


def get_current_user_id(user=Depends(verify_token)) -> str:
    user_id = user.get("sub")
    if not user_id:
        raise HTTPException(status_code=401, detail="Token has no subject")
    return str(user_id)


def get_profile_service(request: Request) -> ProfileService:
    return request.app.state.profile_service


def get_relationship_service(request: Request) -> RelationshipService:
    return request.app.state.relationship_service


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service
