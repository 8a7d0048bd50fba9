from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from errors import InvalidInput

DISPLAY_PLACES = 2

_INSERTS = {"sqlite": sqlite_insert, "postgresql": pg_insert}


def parse_date(value) -> date:
    """Calendar date of ``value``; date-times are moved to UTC before truncating."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        try:
            if len(text) == 10:
                return date.fromisoformat(text)
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise InvalidInput("Invalid date")
    else:
        raise InvalidInput("Invalid date")

    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.date()


def rounded(value: Optional[float], places: int = DISPLAY_PLACES) -> Optional[float]:
    return None if value is None else round(value, places)


def upsert(db: Session, model, keys: dict, values: dict) -> None:
    """
    Insert-or-overwrite on the natural key ``keys``. On SQLite and PostgreSQL
    this is a single INSERT ... ON CONFLICT statement, so concurrent writers
    to the same key resolve to whichever commits last.

    ON CONFLICT skips column ``onupdate`` hooks, so ``updated_at`` is set here.
    """
    if "updated_at" in model.__table__.c and "updated_at" not in values:
        values = {**values, "updated_at": datetime.utcnow()}

    insert = _INSERTS.get(db.get_bind().dialect.name)
    if insert is not None:
        stmt = insert(model).values(**keys, **values)
        stmt = stmt.on_conflict_do_update(index_elements=list(keys), set_=values)
        db.execute(stmt)
        return

    row = db.query(model).filter_by(**keys).first()
    if row is None:
        db.add(model(**keys, **values))
    else:
        for field, value in values.items():
            setattr(row, field, value)
