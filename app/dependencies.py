"""FastAPI dependency injection: db session, current user, workspace, job dispatcher."""

import uuid
from collections.abc import Generator
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.config import get_settings
from app.db.base import SessionLocal
from app.db.models.user import User
from app.db.models.workspace import Member, Workspace
from app.services.job_dispatcher import JobDispatcher, get_dispatcher

security = HTTPBearer(auto_error=False)


def get_db() -> Generator[Session, None, None]:
    """Provide a DB session; close after request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    db: Annotated[Session, Depends(get_db)],
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)] = None,
) -> User:
    """Resolve the actor from the bearer JWT `sub`; 401 if missing or invalid."""
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Not authenticated",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not credentials:
        raise unauthorized
    try:
        settings = get_settings()
        payload = jwt.decode(
            credentials.credentials,
            settings.secret_key,
            algorithms=[settings.algorithm],
        )
        user_id = uuid.UUID(str(payload.get("sub")))
    except (JWTError, ValueError):
        raise unauthorized
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise unauthorized
    return user


def get_workspace_for_user(
    db: Annotated[Session, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    x_workspace_id: Annotated[Optional[uuid.UUID], Header()] = None,
) -> Workspace:
    """Workspace from the X-Workspace-Id header, else the user's primary one (owner first)."""
    q = db.query(Member).filter(Member.user_id == user.id)
    if x_workspace_id is not None:
        q = q.filter(Member.workspace_id == x_workspace_id)
    member = q.order_by(Member.role.desc()).first()
    if not member:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No workspace found for user",
        )
    workspace = db.query(Workspace).filter(Workspace.id == member.workspace_id).first()
    if not workspace:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Workspace not found",
        )
    return workspace


def get_job_dispatcher() -> JobDispatcher:
    return get_dispatcher()


DbSession = Annotated[Session, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
CurrentWorkspace = Annotated[Workspace, Depends(get_workspace_for_user)]
Dispatcher = Annotated[JobDispatcher, Depends(get_job_dispatcher)]
