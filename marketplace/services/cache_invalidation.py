from __future__ import annotations

import logging

from sqlalchemy import event
from sqlalchemy.orm import Session

from marketplace.models import Image, Listing


logger = logging.getLogger(__name__)

_PENDING_KEY = "listings_cache_dirty"
_WATCHED = (Listing, Image)
_INSTALLED = False


def _touches_listings(session: Session) -> bool:
    for obj in (*session.new, *session.dirty, *session.deleted):
        if isinstance(obj, _WATCHED):
            return True
    return False


def _after_flush(session: Session, flush_context) -> None:
    if _touches_listings(session):
        session.info[_PENDING_KEY] = True


def _after_commit(session: Session) -> None:
    if not session.info.pop(_PENDING_KEY, False):
        return
    from marketplace.services.listing_service import invalidate_listings_cache

    try:
        invalidate_listings_cache()
    except Exception:
        logger.exception("listings_cache_invalidation_failed")


def _after_transaction_end(session: Session, transaction) -> None:
    # Savepoints end inside the outer transaction; only the outermost end clears the mark.
    if transaction.parent is None:
        session.info.pop(_PENDING_KEY, None)


def install_listing_cache_invalidation() -> None:
    """Drop cached listing pages once a transaction that wrote listings or images commits."""
    global _INSTALLED
    if _INSTALLED:
        return
    event.listen(Session, "after_flush", _after_flush)
    event.listen(Session, "after_commit", _after_commit)
    event.listen(Session, "after_transaction_end", _after_transaction_end)
    _INSTALLED = True
