import logging
import os
from typing import Optional

import jwt
from dotenv import load_dotenv
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from inbox.chat.store import DataStore, SupabaseStore
from inbox.core.errors import NotAuthenticated
from inbox.core.supabase_client import get_supabase


load_dotenv()
logger = logging.getLogger(__name__)

# auto_error=False so a missing header surfaces as NotAuthenticated, not a bare 403
security = HTTPBearer(auto_error=False)


def verify_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> dict:
    if credentials is None or not credentials.credentials:
        raise NotAuthenticated()

    token = credentials.credentials

    try:
        payload = jwt.decode(
            token,
            os.getenv("SUPABASE_JWT_SECRET"),
            algorithms=["HS256"],
            issuer=f"{os.getenv('PUBLIC_SUPABASE_URL')}/auth/v1",
            options={"verify_aud": False},
            leeway=60,
        )
        return payload

    except jwt.ExpiredSignatureError:
        raise NotAuthenticated("Token expired")

    except jwt.InvalidTokenError as e:
        logger.info(f"jwt_verification_failed error={e}")
        raise NotAuthenticated("Invalid token")


def get_current_user_id(payload: dict = Depends(verify_token)) -> str:
    user_id = payload.get("sub")
    if not user_id:
        raise NotAuthenticated("Token has no subject")
    return str(user_id)


def get_store() -> DataStore:
    return SupabaseStore(get_supabase())
