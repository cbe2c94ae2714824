"""Plain-dict views of ORM rows for JSON responses."""

from typing import Any, Dict, Iterable, List
from pulseboard.db.models import Base, Person


def row_to_dict(row: Base) -> Dict[str, Any]:
    """Column values of a row. Datetimes are left for FastAPI to encode."""
    return {column.name: getattr(row, column.name) for column in row.__table__.columns}


def rows_to_dicts(rows: Iterable[Base]) -> List[Dict[str, Any]]:
    return [row_to_dict(row) for row in rows]


def person_ref(person: Person | None) -> Dict[str, Any] | None:
    """Compact author/assignee reference embedded in commit and issue listings."""
    if person is None:
        return None
    return {"id": person.id, "display_name": person.display_name or person.name, "email": person.email}
