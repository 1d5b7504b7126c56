import logging

from sqlalchemy.orm import Session

from backend.app.models import User

logger = logging.getLogger(__name__)

DEFAULT_USERNAME = "admin"
DEFAULT_FULL_NAME = "Administrator LPJ"


def seed_default_user(db: Session) -> User:
    """Create the admin account if it is missing. Safe to run repeatedly."""
    user = db.query(User).filter(User.username == DEFAULT_USERNAME).one_or_none()
    if user:
        return user
    user = User(username=DEFAULT_USERNAME, full_name=DEFAULT_FULL_NAME, role="admin")
    db.add(user)
    db.commit()
    logger.info("Seeded default user %s (id=%s)", user.username, user.id)
    return user
