from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from campusfix.api.deps import get_current_user
from campusfix.db.session import get_db
from campusfix.models.user import User
from campusfix.schemas.user import AuthResponse, LoginRequest, UserRegister, UserResponse
from campusfix.services import user as user_service

router = APIRouter()


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(user_in: UserRegister, db: AsyncSession = Depends(get_db)):
    """
    Регистрация нового пользователя. Возвращает пользователя и токен доступа.
    """
    user = await user_service.register(db, obj_in=user_in)
    return {
        "success": True,
        "message": "Пользователь успешно зарегистрирован",
        "user": user,
        "token": user_service.issue_token(user),
    }


@router.post("/login", response_model=AuthResponse)
async def login(credentials: LoginRequest, db: AsyncSession = Depends(get_db)):
    """
    Вход по email и паролю.
    """
    user, token = await user_service.login(db, email=credentials.email, password=credentials.password)
    return {"success": True, "message": "Вход выполнен успешно", "user": user, "token": token}


@router.get("/me", response_model=UserResponse)
async def read_me(current_user: User = Depends(get_current_user)):
    """Данные текущего пользователя"""
    return {"success": True, "user": current_user}
