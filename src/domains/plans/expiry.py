"""Plan expiry sweep: warn trainers whose plan is about to lapse."""
from datetime import datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.settings import settings
from src.core.models import utcnow
from src.domains.notifications.models import NotificationType
from src.domains.notifications.service import send_notification

from .models import PersonalPlanAssignment

logger = structlog.get_logger(__name__)

EXPIRY_WARNING_MESSAGE = (
    "Seu plano vence em breve. Solicite a renovação ou fale com o administrador."
)


async def notify_expiring_plans(
    db: AsyncSession,
    now: datetime | None = None,
    window_days: int | None = None,
) -> int:
    """Send one warning per active assignment expiring within the window.

    Nothing is recorded about previous sweeps, so a trainer is warned again
    on every run until the plan is renewed or lapses.
    Returns the number of notifications sent.
    """
    now = now or utcnow()
    if window_days is None:
        window_days = settings.PLAN_EXPIRY_WARNING_DAYS
    limit = now + timedelta(days=window_days)

    query = select(PersonalPlanAssignment.id, PersonalPlanAssignment.trainer_id).where(
        PersonalPlanAssignment.active == True,  # noqa: E712
        PersonalPlanAssignment.expiry_date >= now,
        PersonalPlanAssignment.expiry_date <= limit,
    )
    result = await db.execute(query)
    expiring = result.all()

    sent = 0
    for assignment_id, trainer_id in expiring:
        notification = await send_notification(
            db,
            trainer_id,
            EXPIRY_WARNING_MESSAGE,
            NotificationType.PLAN_EXPIRING,
        )
        if notification is not None:
            sent += 1

    logger.info("plan_expiry_sweep_finished", expiring=len(expiring), notified=sent)
    return sent
