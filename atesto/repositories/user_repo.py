"""
Repository para o modelo User.
"""

from typing import List, Optional

from sqlalchemy import func

from atesto.models import User
from atesto.repositories.base import SqlAlchemyRepository


class UserRepository(SqlAlchemyRepository[User]):
    def __init__(self, session):
        super().__init__(session, User)

    def get_by_email(self, email: str) -> Optional[User]:
        if not email:
            return None
        return (
            self.session.query(User)
            .filter(func.lower(User.email) == email.strip().lower())
            .one_or_none()
        )

    def list_ordered(self) -> List[User]:
        return self.session.query(User).order_by(User.name.asc(), User.email.asc()).all()
