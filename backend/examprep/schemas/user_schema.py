from fastapi_users import schemas
from examprep.models.user_model import UserRole
import uuid
from typing import Optional
from pydantic import BaseModel


class UserRead(schemas.BaseUser[uuid.UUID]):
    full_name: Optional[str] = None
    role: UserRole


class UserCreate(schemas.BaseUserCreate):
    full_name: str


class UserUpdate(schemas.BaseUserUpdate):
    full_name: Optional[str] = None
    role: Optional[UserRole] = None


class LoginRequest(BaseModel):
    email: str
    password: str
