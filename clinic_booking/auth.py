import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from .domain.appointments.actors import ROLES, Actor

logger = logging.getLogger(__name__)


async def get_current_actor(
    x_user_id: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
    x_user_name: Optional[str] = Header(None),
) -> Actor:
    """Build the acting user from the identity headers set by the upstream gateway"""

    if not x_user_id:
        logger.error("❌ No X-User-Id header provided")
        raise HTTPException(status_code=401, detail="Not authenticated. Missing X-User-Id header.")

    try:
        user_id = int(x_user_id)
    except ValueError:
        logger.warning(f"⚠️ Malformed X-User-Id header: {x_user_id!r}")
        raise HTTPException(status_code=401, detail="Invalid X-User-Id header.")

    role = (x_user_role or "patient").strip().lower()
    if role not in ROLES:
        logger.warning(f"⚠️ Unknown role {role!r} for user {user_id}")
        raise HTTPException(status_code=403, detail=f"Unknown role: {role}")

    return Actor(user_id=user_id, role=role, name=x_user_name)


async def require_staff(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Staff or admin only"""
    if not actor.is_staff:
        logger.warning(f"⚠️ User {actor.user_id} ({actor.role}) attempted a staff-only action")
        raise HTTPException(status_code=403, detail="Staff access required.")
    return actor


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    if not actor.is_admin:
        logger.warning(f"⚠️ User {actor.user_id} ({actor.role}) attempted an admin-only action")
        raise HTTPException(status_code=403, detail="Admin access required.")
    return actor


def get_client_ip(request: Request) -> Optional[str]:
    """Client IP, preferring the first X-Forwarded-For hop"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else None
