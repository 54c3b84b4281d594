"""User service: register and look up users."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.auth.jwt import hash_password, verify_password
from app.clock import IdFactory, new_id
from app.users.models import User, UserRegister

log = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8


async def get_user_by_email(session: AsyncSession, email: str) -> Optional[User]:
    """Return user by email or None."""
    result = await session.execute(select(User).where(User.email == email.lower()))
    return result.scalar_one_or_none()


async def get_user(session: AsyncSession, user_id: str) -> Optional[User]:
    return await session.get(User, user_id)


async def register_user(
    session: AsyncSession,
    payload: UserRegister,
    id_factory: IdFactory = new_id,
) -> User:
    """
    Create a new user with a hashed password and commit.
    Raises ValueError if the email is taken or the password is too short.
    """
    if len(payload.password.strip()) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    email = payload.email.lower()
    if await get_user_by_email(session, email):
        raise ValueError(f"User already exists: {email}")
    user = User(
        id=id_factory(),
        email=email,
        name=payload.name.strip() or email,
        password_hash=hash_password(payload.password),
    )
    session.add(user)
    try:
        await session.commit()
    except IntegrityError:
        await session.rollback()
        raise ValueError(f"User already exists: {email}") from None
    await session.refresh(user)
    log.info("Registered user id=%s email=%s", user.id, user.email)
    return user


async def authenticate(session: AsyncSession, email: str, password: str) -> Optional[User]:
    """Return the user if email and password match, else None."""
    user = await get_user_by_email(session, email)
    if not user or not verify_password(password, user.password_hash):
        return None
    return user
