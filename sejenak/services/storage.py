"""
Storage helpers shared by the services.

PagedQuery walks a query in fixed-size pages so large tables are never
materialised in one round trip. Iterating it again starts a fresh walk
from the first page.
"""
import logging
from typing import Iterator, List

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..utils.exceptions import DataUnavailableError

logger = logging.getLogger(__name__)


class PagedQuery:
    """
    Lazy, restartable cursor over a SQLAlchemy query.

    Usage:
        for booking in PagedQuery(Booking.query.filter(...), Booking.id):
            ...
    """

    def __init__(self, query, order_by, page_size: int = None, source: str = 'rows'):
        self.query = query
        self.order_by = order_by
        self.page_size = page_size or current_app.config.get('STORAGE_PAGE_SIZE', 1000)
        self.source = source

    def pages(self) -> Iterator[List]:
        offset = 0
        ordered = self.query.order_by(self.order_by)
        while True:
            try:
                page = ordered.limit(self.page_size).offset(offset).all()
            except SQLAlchemyError as e:
                db.session.rollback()
                logger.error(f'Failed to read {self.source} at offset {offset}: {e}')
                raise DataUnavailableError(f'Could not read {self.source}', e) from e
            if page:
                yield page
            if len(page) < self.page_size:
                return
            offset += self.page_size

    def __iter__(self):
        for page in self.pages():
            yield from page

    def all(self) -> List:
        return list(self)


def fetch_optional(paged: PagedQuery) -> List:
    """
    Read an auxiliary source, treating a storage failure as no rows.
    """
    try:
        return paged.all()
    except DataUnavailableError as e:
        logger.warning(f'{paged.source} unavailable, continuing without it: {e.original_error}')
        return []


def commit_or_raise(action: str) -> None:
    """Commit the session; on failure roll back and raise DataUnavailableError."""
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f'Failed to {action}: {e}')
        raise DataUnavailableError(f'Could not {action}', e) from e
