"""
Shared API dependencies
"""
from fastapi import Header, HTTPException
from typing import Optional
from uuid import UUID


async def get_actor_id(x_actor_id: str = Header(..., alias="X-Actor-Id")) -> UUID:
    """Acting user id; sessions are handled upstream of this service"""
    try:
        return UUID(x_actor_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="X-Actor-Id must be a UUID")


async def get_optional_actor_id(x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id")) -> Optional[UUID]:
    if not x_actor_id:
        return None
    return await get_actor_id(x_actor_id)
