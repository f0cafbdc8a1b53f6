"""
Request-scoped dependencies: viewer identity and the services held on app.state.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from jose import JWTError, jwt

from config.logging_config import logger
from config.settings import ADMIN_EMAILS, JWT_ALGORITHM, JWT_SECRET_KEY
from search.access_policy import AccessPolicy
from search.models import Viewer
from search.orchestrator import SearchOrchestrator


def create_access_token(user_id: str, email: Optional[str] = None, tier: str = "free",
                        expires_delta: timedelta = timedelta(hours=12)) -> str:
    """Issue a bearer token carrying the viewer claims (sub, email, tier)."""
    claims = {
        "sub": user_id,
        "email": email,
        "tier": tier,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(claims, JWT_SECRET_KEY, algorithm=JWT_ALGORITHM)


def decode_viewer_token(token: Optional[str]) -> Viewer:
    """Turn a bearer token into a Viewer. Missing or invalid tokens give an anonymous free viewer."""
    if not token:
        return Viewer()
    try:
        payload = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM])
    except JWTError as e:
        logger.info(f"🔒 Ignoring invalid bearer token: {e}")
        return Viewer()

    if not payload.get("sub"):
        return Viewer()
    return Viewer(
        user_id=str(payload["sub"]),
        email=payload.get("email"),
        plan=payload.get("tier") or "free",
    )


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_viewer(request: Request, authorization: Optional[str] = Header(None)) -> Viewer:
    viewer = decode_viewer_token(_bearer_token(authorization))
    loader = getattr(request.app.state, "context_loader", None)
    if viewer.is_identified and loader is not None:
        # The stored subscription is authoritative over the token claim.
        stored_tier = await loader.subscription_tier(viewer.user_id)
        if stored_tier:
            viewer.plan = stored_tier
    return viewer


async def require_identified_viewer(viewer: Viewer = Depends(get_viewer)) -> Viewer:
    if not viewer.is_identified:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return viewer


async def require_admin(viewer: Viewer = Depends(require_identified_viewer)) -> Viewer:
    if not viewer.email or viewer.email.lower() not in ADMIN_EMAILS:
        raise HTTPException(status_code=403, detail="Access denied")
    return viewer


def get_orchestrator(request: Request) -> SearchOrchestrator:
    return request.app.state.orchestrator


def get_policy(request: Request) -> AccessPolicy:
    return request.app.state.policy
