"""
Generic Repository Pattern.
Fornece as operações CRUD básicas para qualquer modelo SQLAlchemy.
"""
from typing import Any, Generic, Optional, Type, TypeVar

from atesto.extensions import db

T = TypeVar("T", bound=db.Model)


class SqlAlchemyRepository(Generic[T]):
    def __init__(self, session, model_cls: Type[T]):
        self.session = session
        self.model_cls = model_cls

    def add(self, entity: T) -> T:
        """Adiciona a entidade à sessão."""
        self.session.add(entity)
        return entity

    def get_by_id(self, id: Any) -> Optional[T]:
        """Recupera pela Primary Key."""
        if id is None:
            return None
        return self.session.get(self.model_cls, id)

    def delete(self, entity: T) -> None:
        """Remove a entidade."""
        self.session.delete(entity)
