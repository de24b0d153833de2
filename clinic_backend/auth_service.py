from __future__ import annotations

from sqlalchemy import select

from .auth_models import User
from .auth_security import hash_password, verify_password
from .db import db_session


def _normalize_email(email: str) -> str:
    return email.strip().lower()


def create_user(name: str, email: str, password: str) -> str:
    email = _normalize_email(email)
    if not name.strip() or not email or not password:
        raise ValueError("Name, email and password are required.")

    with db_session() as s:
        exists = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if exists:
            raise ValueError("Email already registered.")

        u = User(name=name.strip(), email=email, password_hash=hash_password(password), is_active=True)
        s.add(u)
        s.flush()
        return u.id


def authenticate(email: str, password: str) -> User | None:
    with db_session() as s:
        u = s.execute(select(User).where(User.email == _normalize_email(email))).scalar_one_or_none()
        if not u or not u.is_active:
            return None
        if not verify_password(password, u.password_hash):
            return None
        return u


def get_user_by_id(user_id: str) -> User | None:
    with db_session() as s:
        return s.get(User, user_id)
