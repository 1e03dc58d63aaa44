from typing import Optional

from fastapi import Header

# Set by the identity proxy in front of the service
ACTOR_HEADER = "X-Actor-Id"


async def get_current_actor(
    x_actor_id: Optional[str] = Header(default=None, alias=ACTOR_HEADER),
) -> Optional[str]:
    if x_actor_id is None:
        return None
    return x_actor_id.strip() or None

