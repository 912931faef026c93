"""
Entitlement expiry sweep.

Marks every active profile whose subscription_end_date has passed as
expired. Access checks already treat such rows as inactive; this job keeps
the stored status truthful for reporting and for providers' renewal events.

Usage:
    python -m panelpass.jobs.expire_entitlements

Deployed as an hourly cron job.
"""

import logging
import os
import sys
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from panelpass.database.session import session_scope
from panelpass.models.base import utcnow
from panelpass.models.profile import SubscriptionStatus
from panelpass.repositories.profile_repository import ProfileRepository, profile_to_entitlement

logger = logging.getLogger(__name__)

BATCH_SIZE = 500

# Upper bound on batches per run so a failing write cannot loop forever
MAX_BATCHES_PER_RUN = 200


class ExpiryStats:
    """Track expiry run statistics."""

    def __init__(self):
        self.batches = 0
        self.profiles_expired = 0
        self.errors = 0
        self.start_time = datetime.now(timezone.utc)

    def to_dict(self) -> dict:
        duration = (datetime.now(timezone.utc) - self.start_time).total_seconds()
        return {
            "batches": self.batches,
            "profiles_expired": self.profiles_expired,
            "errors": self.errors,
            "duration_seconds": duration
        }


def expire_elapsed_entitlements(
    session: Session,
    clock: Callable[[], datetime] = utcnow,
    batch_size: int = BATCH_SIZE,
    stats: Optional[ExpiryStats] = None
) -> ExpiryStats:
    """
    Expire active entitlements whose end date has passed.

    Tier, provider and references are kept; only the status changes.

    Args:
        session: Database session
        clock: Source of the reference time
        batch_size: Profiles updated per commit
        stats: Stats object to accumulate into

    Returns:
        ExpiryStats for the run
    """
    stats = stats or ExpiryStats()
    store = ProfileRepository(session)
    now = clock()

    while stats.batches < MAX_BATCHES_PER_RUN:
        profiles = store.list_elapsed_active(now, limit=batch_size)
        if not profiles:
            break

        stats.batches += 1
        try:
            for profile in profiles:
                expired = replace(profile_to_entitlement(profile), status=SubscriptionStatus.EXPIRED)
                store.write_entitlement(profile.id, expired)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            stats.errors += 1
            logger.error("Failed to expire entitlement batch", extra={
                "batch": stats.batches,
                "error": str(e)
            })
            break

        stats.profiles_expired += len(profiles)
        logger.info("Expired entitlement batch", extra={
            "batch": stats.batches,
            "count": len(profiles)
        })

    return stats


def run_expiry() -> dict:
    """
    Run the expiry sweep against the configured database.

    Returns:
        Statistics dictionary with job results
    """
    logger.info("Starting entitlement expiry job")

    with session_scope() as session:
        stats = expire_elapsed_entitlements(session)

    result = stats.to_dict()
    logger.info("Entitlement expiry job completed", extra=result)
    return result


def main():
    """Entry point for running the expiry job from command line."""
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    try:
        result = run_expiry()
        print(f"Entitlement expiry completed: {result}")
        sys.exit(0)
    except Exception as e:
        logger.error("Entitlement expiry job failed", extra={"error": str(e)})
        print(f"Entitlement expiry failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
