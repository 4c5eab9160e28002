"""
Actor resolution.
Authentication happens upstream; the gateway forwards the verified identity
in X-Actor-Id / X-Actor-Role headers.
"""

import logging
from typing import Optional

from fastapi import Header, HTTPException

from .domain.jobs.service import Actor
from .domain.jobs.states import ActorRole

logger = logging.getLogger(__name__)


async def get_current_actor(
    x_actor_id: Optional[str] = Header(None),
    x_actor_role: Optional[str] = Header(None),
) -> Actor:
    if not x_actor_id or not x_actor_role:
        logger.warning("❌ Request without actor headers")
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        role = ActorRole(x_actor_role.strip().lower())
    except ValueError:
        logger.warning(f"❌ Unknown actor role: {x_actor_role}")
        raise HTTPException(status_code=401, detail=f"Unknown role: {x_actor_role}")

    return Actor(id=x_actor_id.strip(), role=role)
