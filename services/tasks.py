"""
Background status resync.

Runs after the response of every field/question mutation, in its own
session, against the field set current when it runs. Failures are
retried and then logged; they never reach the request that scheduled it.
"""

import logging

from fastapi import BackgroundTasks, Request
from sqlalchemy.orm import sessionmaker

from forms.cascade import resync_scholar

log = logging.getLogger(__name__)


def resync_scholar_statuses(session_factory: sessionmaker, scholar_id: int, max_attempts: int = 2) -> bool:
    """Returns True once a resync attempt succeeded."""
    attempts = max(1, max_attempts)
    for attempt in range(1, attempts + 1):
        db = session_factory()
        try:
            resync_scholar(db, scholar_id)
            return True
        except Exception:
            db.rollback()
            log.exception("Status resync for scholar %s failed (attempt %d/%d)", scholar_id, attempt, attempts)
        finally:
            db.close()
    return False


def schedule_resync(background_tasks: BackgroundTasks, request: Request, scholar_id: int) -> None:
    state = request.app.state
    background_tasks.add_task(
        resync_scholar_statuses,
        state.session_factory,
        scholar_id,
        state.settings.cascade_max_attempts,
    )
