from typing import Tuple

from fastapi import Depends, HTTPException

from app.core.roles import Role
from app.deps.auth import require_auth


def require_role(*roles: Role):
    allowed = frozenset(roles)

    def dependency(auth: Tuple[str, Role] = Depends(require_auth)) -> Tuple[str, Role]:
        _user_id, user_role = auth
        if user_role not in allowed:
            raise HTTPException(status_code=403, detail="Insufficient role")
        return auth

    return dependency
