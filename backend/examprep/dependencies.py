from fastapi import Depends, HTTPException, status, Request
from examprep.models.user_model import User, UserRole
from .security import current_active_user


def current_user_has_role(required_role: UserRole):
    async def current_user_contains_role(user: User = Depends(current_active_user)):
        if user.role != required_role:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Operation not permitted",
            )
        return user
    return current_user_contains_role


current_admin = current_user_has_role(UserRole.ADMIN)


async def users_router_permission(request: Request, user: User = Depends(current_active_user)):
    # the users router is read-only for students; writes go through admins
    if request.method.upper() in ("POST", "PUT", "PATCH", "DELETE") and user.role != UserRole.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Operation not permitted")
    return True
