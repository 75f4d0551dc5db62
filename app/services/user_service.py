"""
User Service - actor lookups and reviewer visibility rules
"""
from typing import List, Optional
from uuid import UUID
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, Unauthorized
from app.models import AppUser, UserRole, APPROVER_ROLES


def get_active_user(db: Session, user_id: UUID) -> AppUser:
    user = db.query(AppUser).filter(AppUser.id == user_id).first()
    if not user:
        raise NotFoundError("User", user_id)
    if not user.is_active:
        raise Unauthorized(f"User {user.username} is inactive")
    return user


def visible_target_roles(role: str) -> List[Optional[str]]:
    """
    Approval targets a reviewer with this role may act on.
    None stands for requests without a target role.
    """
    if role == UserRole.ADMIN.value:
        return [UserRole.ADMIN.value, None]
    if role == UserRole.OWNER.value:
        return [UserRole.OWNER.value, None]
    if role == UserRole.DOCTOR.value:
        return [UserRole.DOCTOR.value]
    return []


def can_review_target(user: AppUser, target_role: Optional[str]) -> bool:
    return user.role in APPROVER_ROLES and target_role in visible_target_roles(user.role)


def get_approvers(db: Session, target_role: Optional[str] = None, exclude_user_id: Optional[UUID] = None) -> List[AppUser]:
    """Active users who would see a request aimed at target_role"""
    users = db.query(AppUser).filter(
        AppUser.is_active == True,  # noqa: E712
        AppUser.role.in_(list(APPROVER_ROLES)),
    ).all()
    return [
        user for user in users
        if user.id != exclude_user_id and target_role in visible_target_roles(user.role)
    ]
