from sqlalchemy.orm import Session
from .models import User


def get_user_by_handle(db: Session, handle: str) -> User | None:
    return db.query(User).filter(User.handle == handle).first()


def get_user(db: Session, user_id: int) -> User | None:
    return db.get(User, user_id)


def create_user(db: Session, handle: str, password_hash: str) -> User:
    u = User(handle=handle, password_hash=password_hash)
    db.add(u)
    db.commit()
    db.refresh(u)
    return u
