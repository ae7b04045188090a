#  JSON login route for the SPA; returns the user and a bearer token in one call
from fastapi import APIRouter
from ..security import get_jwt_strategy
from fastapi import Depends, HTTPException, status
from ..db import get_user_db
from ..schemas.user_schema import LoginRequest, UserRead
from fastapi_users.password import PasswordHelper

router = APIRouter(prefix='/auth', tags=['auth'])

password_helper = PasswordHelper()


@router.post("/login")
async def login(payload: LoginRequest, user_db=Depends(get_user_db)):

    user = await user_db.get_by_email(payload.email)
    if not user or not user.is_active:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid credentials")

    valid, new_hash = password_helper.verify_and_update(payload.password, user.hashed_password)
    if not valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid credentials")

    if new_hash:
        await user_db.update(user, {"hashed_password": new_hash})

    access_token = await get_jwt_strategy().write_token(user)

    return {"success": True, "data": {"user": UserRead.model_validate(user), "token": access_token}}
