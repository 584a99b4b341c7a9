import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from .config import JWT_ALGORITHM, JWT_SECRET
from .database import get_db
from .models import Profile
from .shared.enums import ProfileRole

logger = logging.getLogger(__name__)

security = HTTPBearer()


def create_access_token(user_id: str, expires_minutes: int = 60, extra_claims: Optional[dict] = None) -> str:
    """Create a signed HS256 token whose subject is the profile's user_id"""
    now = datetime.now(timezone.utc)
    payload = {"sub": user_id, "iat": now, "exp": now + timedelta(minutes=expires_minutes)}
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry, returning the claims"""
    try:
        return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except ExpiredSignatureError as e:
        logger.warning("⚠️ Expired token presented")
        raise HTTPException(status_code=401, detail="Token expired") from e
    except JWTError as e:
        logger.warning(f"⚠️ Invalid token: {str(e)}")
        raise HTTPException(status_code=401, detail="Invalid token") from e


async def get_token_subject(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> str:
    """Verified subject of the bearer token, for users who have no profile yet"""
    claims = decode_access_token(credentials.credentials)
    user_id = claims.get("sub") or claims.get("user_id")
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token: missing subject")
    return str(user_id)


async def get_current_profile(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Profile:
    """Resolve the staff profile behind the bearer token"""
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    claims = decode_access_token(credentials.credentials)
    user_id = claims.get("sub") or claims.get("user_id")
    if not user_id:
        logger.error(f"❌ Token missing subject claim. Available claims: {list(claims.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token: missing subject")

    profile = db.query(Profile).filter(Profile.user_id == str(user_id)).first()
    if not profile:
        logger.warning(f"⚠️ No profile for user {user_id}")
        raise HTTPException(status_code=403, detail="No barbershop profile for this user")

    if not profile.is_active:
        logger.warning(f"⚠️ Inactive profile {profile.id} attempted access")
        raise HTTPException(status_code=403, detail="Profile is inactive")

    return profile


def require_roles(*roles: ProfileRole):
    """Dependency factory restricting a route to the given staff roles"""

    async def checker(profile: Profile = Depends(get_current_profile)) -> Profile:
        if profile.role not in roles:
            logger.warning(f"⚠️ Profile {profile.id} ({profile.role.value}) denied; needs {roles}")
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return profile

    return checker


require_admin = require_roles(ProfileRole.ADMIN)
require_front_desk = require_roles(ProfileRole.ADMIN, ProfileRole.RECEPTIONIST)
