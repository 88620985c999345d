from fastapi import Depends

from invoicehub.errors import PermissionDeniedError
from invoicehub.middleware.auth import get_current_user


def require_roles(*allowed_roles: str):
    """Dependency factory: reject callers whose token role is not in `allowed_roles`."""

    async def check_role(current_user: dict = Depends(get_current_user)) -> dict:
        if current_user["role"] not in allowed_roles:
            raise PermissionDeniedError(
                f"Role '{current_user['role']}' cannot perform this action"
            )
        return current_user

    return check_role
