"""
Auth endpoints
==============

POST /api/v1/auth/register -- create an account, returns a token
POST /api/v1/auth/login    -- exchange credentials for a token
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_db
from carpool.api.middleware import limiter
from carpool.api.schemas import AuthResponse, LoginRequest, RegisterRequest, UserResponse
from carpool.config import settings
from carpool.services.accounts import AccountService

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/register",
    status_code=201,
    response_model=AuthResponse,
    summary="Register a new user",
)
@limiter.limit(settings.rate_limit)
async def register(
    request: Request,
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
):
    user, token = await AccountService(db).register(**body.model_dump())
    return AuthResponse(token=token, user=UserResponse.model_validate(user))


@router.post("/login", response_model=AuthResponse, summary="Log in")
@limiter.limit(settings.rate_limit)
async def login(
    request: Request,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
):
    user, token = await AccountService(db).login(body.email, body.password)
    return AuthResponse(token=token, user=UserResponse.model_validate(user))
