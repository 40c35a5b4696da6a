from typing import Optional
from fastapi import Header, HTTPException, Request, status
import logging

from groupcall.services.group_call import GroupCallLifecycleManager

logger = logging.getLogger(__name__)


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """
    Identity of the caller.

    Authentication happens upstream; the gateway forwards the verified user
    id in the X-User-Id header.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    return x_user_id.strip()


def get_lifecycle_manager(request: Request) -> GroupCallLifecycleManager:
    return request.app.state.lifecycle
