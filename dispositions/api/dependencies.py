"""FastAPI dependencies: the acting user and the service objects bound to a request's session."""
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from dispositions.core.exceptions import MESSAGES
from dispositions.database import get_db
from dispositions.models.domain import User
from dispositions.services.authorization import Actor
from dispositions.services.lifecycle import DispositionLifecycle
from dispositions.services.linking import LinkingCoordinator
from dispositions.services.notifications import NotificationDispatcher
from dispositions.services.storage import LocalObjectStore, ObjectStore

_store: Optional[ObjectStore] = None


def get_store() -> ObjectStore:
    """Process-wide object store, created on first use."""
    global _store
    if _store is None:
        _store = LocalObjectStore()
    return _store


def get_actor(
    x_user_id: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> Actor:
    """Resolve the ``X-User-Id`` header to an Actor. Missing or unknown users get 401."""
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=MESSAGES["LOGIN_REQUIRED"])
    user = db.query(User).filter(User.id == x_user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=MESSAGES["LOGIN_REQUIRED"])
    return Actor(id=user.id, name=user.name, role=user.role)


def get_lifecycle(
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_store),
) -> DispositionLifecycle:
    return DispositionLifecycle(db, store)


def get_linking(
    db: Session = Depends(get_db),
    store: ObjectStore = Depends(get_store),
) -> LinkingCoordinator:
    return LinkingCoordinator(db, store)


def get_dispatcher(db: Session = Depends(get_db)) -> NotificationDispatcher:
    return NotificationDispatcher(db)
