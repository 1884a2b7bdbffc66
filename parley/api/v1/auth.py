"""
Authentication API routes.
Registration, login and refresh-token rotation.
"""
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from parley.core.database import get_db
from parley.schemas.user import RefreshRequest, TokenResponse, UserLogin, UserRegister, UserResponse
from parley.services.token_service import TokenPair, TokenService
from parley.services.user_service import UserService

router = APIRouter()


def _token_response(pair: TokenPair, user=None) -> TokenResponse:
    return TokenResponse(
        access_token=pair.access_token,
        refresh_token=pair.refresh_token,
        expires_in=pair.expires_in,
        user=UserResponse.model_validate(user) if user is not None else None,
    )


@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an account"
)
async def register(
    request: Request,
    data: UserRegister,
    db: AsyncSession = Depends(get_db)
):
    """
    Register and sign in. The response carries the new user's friend code.
    """
    user = await UserService(db).register(
        email=data.email,
        username=data.username,
        password=data.password,
        display_name=data.display_name,
    )
    pair = await TokenService(db).issue(user.id, user_agent=request.headers.get("user-agent"))
    return _token_response(pair, user)


@router.post("/login", response_model=TokenResponse, summary="Sign in with email or username")
async def login(
    request: Request,
    data: UserLogin,
    db: AsyncSession = Depends(get_db)
):
    user = await UserService(db).authenticate(data.identifier, data.password)
    pair = await TokenService(db).issue(
        user.id,
        device_id=data.device_id,
        user_agent=request.headers.get("user-agent"),
    )
    return _token_response(pair, user)


@router.post("/refresh", response_model=TokenResponse, summary="Rotate a refresh token")
async def refresh(
    request: Request,
    data: RefreshRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Exchange a refresh token for a new access/refresh pair.

    Each refresh token works once; presenting a used token revokes every
    session of the account.
    """
    pair = await TokenService(db).rotate(
        data.refresh_token,
        device_id=data.device_id,
        user_agent=request.headers.get("user-agent"),
    )
    return _token_response(pair)


@router.post("/logout", summary="Revoke a refresh token")
async def logout(
    data: RefreshRequest,
    db: AsyncSession = Depends(get_db)
):
    revoked = await TokenService(db).revoke(data.refresh_token)
    return {"success": True, "revoked": revoked}
