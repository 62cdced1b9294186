"""Periodic access grant maintenance."""

from typing import Dict

from celery import shared_task
from sqlalchemy.exc import SQLAlchemyError

from medilocker.app import get_app
from medilocker.utils.logging import get_logger

logger = get_logger(__name__)


@shared_task  # type: ignore[misc]
def expire_access_grants() -> Dict[str, int]:
    """Expire approved grants whose validity window has elapsed."""
    try:
        expired = get_app().grants.sweep_expired()
    except SQLAlchemyError as e:
        logger.error("access_grant_sweep_failed", error=str(e))
        raise

    logger.info("access_grant_sweep_finished", expired=expired)
    return {"expired": expired}
