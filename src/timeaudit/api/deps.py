"""Shared route dependencies."""
from fastapi import HTTPException, Request


def get_synchronizer(request: Request):
    return request.app.state.synchronizer


async def get_owner(request: Request) -> str:
    """The signed-in owner id, or 401."""
    owner = await request.app.state.synchronizer.users.current_owner()
    if owner is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return owner
