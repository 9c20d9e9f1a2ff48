from flask import current_app
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from pairplay import db
from pairplay.errors import StorageConflictError


def commit(conflict_message: str = 'This was changed by someone else; reload and try again') -> None:
    """Commit the session, turning constraint and version races into StorageConflictError.

    The session is rolled back first, so every write made since the last
    commit is discarded together.
    """
    try:
        db.session.commit()
    except (IntegrityError, StaleDataError) as exc:
        db.session.rollback()
        current_app.logger.warning(f"[storage-conflict] {exc.__class__.__name__}: {conflict_message}")
        raise StorageConflictError(conflict_message) from exc
