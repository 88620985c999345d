from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from invoicehub.database import get_db
from invoicehub.middleware.auth import get_current_user
from invoicehub.routes.users import get_active_user, user_to_response
from invoicehub.schemas.auth import (
    ChangePasswordRequest,
    LoginRequest,
    RefreshTokenRequest,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from invoicehub.services import auth_service

router = APIRouter()


def _token_response(user) -> TokenResponse:
    pair = auth_service.issue_tokens(user)
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
    )


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Create an account and sign it in."""
    user = await auth_service.register_user(
        db, body.email, body.password, body.name, body.company_name
    )
    return _token_response(user)


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    return _token_response(await auth_service.authenticate(db, body.email, body.password))


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshTokenRequest, db: AsyncSession = Depends(get_db)):
    return _token_response(await auth_service.user_from_refresh_token(db, body.refresh_token))


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: dict = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return user_to_response(await get_active_user(db, current_user["user_id"]))


@router.post("/change-password", status_code=status.HTTP_204_NO_CONTENT)
async def change_password(
    body: ChangePasswordRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await get_active_user(db, current_user["user_id"])
    await auth_service.change_password(db, user, body.current_password, body.new_password)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
