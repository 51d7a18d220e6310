"""
Caller identity.
The identity provider sits in front of this API and forwards the
authenticated user's id; the core treats it as an opaque key.
"""
from typing import Optional

from fastapi import Header, HTTPException


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing user identity")
    return x_user_id.strip()
