"""Read-only identity lookups used by the request and ticket engines."""
from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from ..core.errors import NotFoundError
from ..models.user import User


@dataclass(frozen=True)
class Actor:
    id: int
    name: str
    email: str | None
    role: str
    manager_id: int | None = None


def to_actor(user: User) -> Actor:
    return Actor(
        id=user.id,
        name=user.full_name,
        email=user.email,
        role=user.role,
        manager_id=user.manager_id,
    )


def get_user(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user:
        raise NotFoundError(f"User not found: {user_id}")
    return user


def get_actor(session: Session, actor_id: int) -> Actor:
    return to_actor(get_user(session, actor_id))


def get_manager(session: Session, user: User) -> User | None:
    if user.manager_id is None:
        return None
    return session.get(User, user.manager_id)
