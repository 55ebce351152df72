"""
Authentication API: registration, password login and bearer-token identity.
Requests without a valid token get 401; clients send the user to sign-in.
"""

import logging
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from jose import jwt, JWTError
from passlib.context import CryptContext
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from ledger.config import settings
from ledger.db import get_db
from ledger.models import User
from ledger.schema.request import RegisterRequest
from ledger.schema.response import TokenResponse

logger = logging.getLogger("ledger.auth")

router = APIRouter(prefix="/auth", tags=["auth"])
pwd = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")


def hash_pw(password: str) -> str:
    return pwd.hash(password)


def verify_pw(password: str, hashed: str) -> bool:
    return pwd.verify(password, hashed)


def create_access_token(sub: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.jwt_expire_minutes)
    payload = {
        "sub": sub,
        "exp": expire,
        "iat": datetime.now(timezone.utc),
        "jti": str(uuid4())[:8],
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    token: str = Depends(oauth2_scheme),
) -> User:
    payload = decode_token(token)
    sub = payload.get("sub")
    if sub is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    user = await db.get(User, int(sub))
    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    return user


@router.post("/register", response_model=TokenResponse)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    res = await db.execute(select(User).where(User.email == body.email))
    if res.scalars().first():
        raise HTTPException(status_code=400, detail="Email already registered")

    user = User(
        email=body.email,
        hashed_password=hash_pw(body.password),
        display_name=body.display_name,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    logger.info("user_registered", extra={"user_id": user.id})

    return TokenResponse(access_token=create_access_token(str(user.id)), user_id=user.id)


@router.post("/login", response_model=TokenResponse)
async def login(
    form: OAuth2PasswordRequestForm = Depends(),
    db: AsyncSession = Depends(get_db),
):
    res = await db.execute(select(User).where(User.email == form.username))
    user = res.scalars().first()
    if not user or not verify_pw(form.password, user.hashed_password):
        logger.info("login_failed", extra={"email": form.username})
        raise HTTPException(status_code=400, detail="Invalid credentials")

    return TokenResponse(access_token=create_access_token(str(user.id)), user_id=user.id)
