"""Caller identity, supplied by the upstream session layer."""

from fastapi import Header, HTTPException


async def get_identity(x_user_id: str | None = Header(default=None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Unauthorized")
    return x_user_id.strip()
