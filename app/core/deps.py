from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.core.security import decode_token, TokenError
from app.models.user import User

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


# -------------------------
# Principals
# -------------------------
@dataclass(frozen=True)
class MemberPrincipal:
    user: User

    @property
    def user_id(self) -> int:
        return int(self.user.id)


@dataclass(frozen=True)
class PartnerPrincipal:
    user: User

    @property
    def user_id(self) -> int:
        return int(self.user.id)


@dataclass(frozen=True)
class AdminPrincipal:
    user: User

    @property
    def user_id(self) -> int:
        return int(self.user.id)


Principal = Union[MemberPrincipal, PartnerPrincipal, AdminPrincipal]

_PRINCIPALS_BY_ROLE = {
    "member": MemberPrincipal,
    "partner": PartnerPrincipal,
    "admin": AdminPrincipal,
}


async def get_current_user(
    token: str = Depends(oauth2_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")

    try:
        payload = decode_token(token)
    except TokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
        )

    try:
        user_id_int = int(payload["sub"])
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail="Invalid user id in token")

    res = await db.execute(select(User).where(User.id == user_id_int))
    user = res.scalar_one_or_none()

    if not user:
        raise HTTPException(status_code=401, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="User inactive")

    return user


def principal_for(user: User) -> Principal:
    cls = _PRINCIPALS_BY_ROLE.get(user.role)
    if cls is None:
        raise HTTPException(status_code=403, detail=f"Unknown role '{user.role}'")
    return cls(user=user)


def get_principal(current_user: User = Depends(get_current_user)) -> Principal:
    return principal_for(current_user)


def require_member(principal: Principal = Depends(get_principal)) -> MemberPrincipal:
    if not isinstance(principal, MemberPrincipal):
        raise HTTPException(status_code=403, detail="Member only")
    return principal


def require_partner(principal: Principal = Depends(get_principal)) -> PartnerPrincipal:
    if not isinstance(principal, PartnerPrincipal):
        raise HTTPException(status_code=403, detail="Partner only")
    return principal


def require_admin(principal: Principal = Depends(get_principal)) -> AdminPrincipal:
    if not isinstance(principal, AdminPrincipal):
        raise HTTPException(status_code=403, detail="Admin only")
    return principal
