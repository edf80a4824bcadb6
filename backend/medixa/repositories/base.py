"""
Shared data-access helpers for the profile and chat session repositories.

Repositories never commit on their own (profiles excepted, see
ProfileRepository.create_profile); the caller's unit of work decides.
"""

from typing import Any, Dict, Generic, Optional, Type, TypeVar, Union
import logging

from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..models.base import BaseModel as DBBaseModel

RowT = TypeVar("RowT", bound=DBBaseModel)
CreateT = TypeVar("CreateT", bound=BaseModel)
UpdateT = TypeVar("UpdateT", bound=BaseModel)

logger = logging.getLogger(__name__)


class BaseRepository(Generic[RowT, CreateT, UpdateT]):
    """
    get / create / update / delete for one mapped table.

    Writes flush so generated ids and defaults are visible, and roll the
    session back before re-raising on failure.
    """

    def __init__(self, model: Type[RowT]):
        self.model = model
        self._columns = {c.key for c in model.__table__.columns}

    @property
    def name(self) -> str:
        return self.model.__name__

    def get(self, db: Session, id: str) -> Optional[RowT]:
        try:
            return db.get(self.model, id)
        except Exception as e:
            logger.error(f"Error loading {self.name} {id}: {e}")
            raise

    def create(self, db: Session, values: Union[CreateT, Dict[str, Any]]) -> RowT:
        try:
            row = self.model(**self._values(values))
            db.add(row)
            db.flush()
            db.refresh(row)
            logger.debug(f"Created {self.name} {row.id}")
            return row
        except Exception as e:
            db.rollback()
            logger.error(f"Error creating {self.name}: {e}")
            raise

    def update(self, db: Session, row: RowT, values: Union[UpdateT, Dict[str, Any]]) -> RowT:
        try:
            for field, value in self._values(values).items():
                setattr(row, field, value)
            db.flush()
            db.refresh(row)
            logger.debug(f"Updated {self.name} {row.id}")
            return row
        except Exception as e:
            db.rollback()
            logger.error(f"Error updating {self.name} {row.id}: {e}")
            raise

    def delete(self, db: Session, id: str) -> bool:
        """True if a row was removed; a missing id is not an error."""
        try:
            row = db.get(self.model, id)
            if row is None:
                return False
            db.delete(row)
            db.flush()
            logger.info(f"Deleted {self.name} {id}")
            return True
        except Exception as e:
            db.rollback()
            logger.error(f"Error deleting {self.name} {id}: {e}")
            raise

    def _values(self, values: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
        # Unknown keys are dropped so API schemas can carry extra fields
        if isinstance(values, BaseModel):
            values = values.model_dump(exclude_unset=True)
        elif not isinstance(values, dict):
            raise TypeError(f"Unsupported input for {self.name}: {type(values)!r}")
        return {k: v for k, v in values.items() if k in self._columns}
