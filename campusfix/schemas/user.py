import re
from datetime import datetime
from typing import Annotated, List, Optional

from pydantic import AfterValidator, AliasChoices, BaseModel, BeforeValidator, EmailStr, Field

from campusfix.models.user import UserRole
from campusfix.schemas.common import OptionalText, TrimmedStr

# Минимум 8 символов: цифра, строчная и заглавная буква, спецсимвол
PASSWORD_PATTERN = re.compile(r"^(?=.*\d)(?=.*[a-z])(?=.*[A-Z])(?=.*[!@#$%^&*]).{8,}$")
PASSWORD_MESSAGE = (
    "Пароль должен содержать минимум 8 символов, цифры, заглавные и строчные буквы, "
    "и специальные символы (!@#$%^&*)"
)


def check_password_strength(value: str) -> str:
    if not PASSWORD_PATTERN.match(value):
        raise ValueError(PASSWORD_MESSAGE)
    return value


def normalize_email(value):
    return value.strip().lower() if isinstance(value, str) else value


StrongPassword = Annotated[str, AfterValidator(check_password_strength)]
NormalizedEmail = Annotated[EmailStr, BeforeValidator(normalize_email)]


class UserBase(BaseModel):
    email: NormalizedEmail
    first_name: TrimmedStr = Field(..., min_length=1, max_length=100)
    last_name: TrimmedStr = Field(..., min_length=1, max_length=100)
    phone: OptionalText = Field(None, max_length=32)
    position: OptionalText = Field(None, max_length=100)


class UserCreate(UserBase):
    password: StrongPassword
    role: UserRole = UserRole.ENGINEER


class UserRegister(UserBase):
    """Самостоятельная регистрация; роль выбрать нельзя."""

    password: StrongPassword


class UserUpdate(BaseModel):
    first_name: Optional[TrimmedStr] = Field(None, min_length=1, max_length=100)
    last_name: Optional[TrimmedStr] = Field(None, min_length=1, max_length=100)
    phone: OptionalText = Field(None, max_length=32)
    position: OptionalText = Field(None, max_length=100)
    role: Optional[UserRole] = None
    is_active: Optional[bool] = None


class PasswordChange(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: StrongPassword


class LoginRequest(BaseModel):
    email: NormalizedEmail
    password: str = Field(..., min_length=1)


class UserRef(BaseModel):
    """Краткие сведения о пользователе во вложенных объектах (автор, исполнитель)."""

    id: int
    name: str = Field(validation_alias=AliasChoices("name", "full_name"))
    email: str

    class Config:
        from_attributes = True


class UserBrief(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    role: UserRole

    class Config:
        from_attributes = True


class User(UserBrief):
    phone: Optional[str] = None
    position: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    user: User


class UserListResponse(BaseModel):
    success: bool = True
    users: List[User]
    total: int
    page: int
    limit: int
    pages: int


class AuthResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    user: User
    token: str
