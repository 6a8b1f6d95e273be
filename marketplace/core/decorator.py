import logging
from functools import wraps

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


class DBException(Exception):
    def __init__(self, message: str, status_code: int = 400, reason: str = "db_error"):
        self.message = message
        self.status_code = status_code
        self.reason = reason
        super().__init__(message)


def db_exception(func):
    """
    Wrap a service method that writes through ``self.db``.

    The session is rolled back before the error is re-raised as ``DBException``
    so the request scoped session stays usable.
    """

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"{func.__qualname__} hit a constraint: {e.orig}")
            raise DBException("Checkout conflicts with an existing record", 409, "conflict")
        except SQLAlchemyError:
            self.db.rollback()
            logger.error(f"{func.__qualname__} failed", exc_info=True)
            raise DBException("Database error occurred", 500)

    return wrapper
