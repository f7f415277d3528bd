from typing import Tuple

from fastapi import HTTPException, Request

from app.core.roles import Role
from app.services.auth_service import verify_token


def _parse_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        raise HTTPException(status_code=401, detail="Missing Authorization header")

    parts = auth_header.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise HTTPException(status_code=401, detail="Invalid Authorization header")

    return parts[1].strip()


def require_auth(request: Request) -> Tuple[str, Role]:
    token = _parse_bearer_token(request)

    try:
        claims = verify_token(token)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc

    user_id = str(claims.get("sub"))

    try:
        role = Role(str(claims.get("role")).upper())
    except ValueError as exc:
        raise HTTPException(status_code=403, detail="Invalid role claim") from exc

    request.state.user_id = user_id
    request.state.role = role.value

    return user_id, role
