import logging
import re

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import bounded
from app.core.errors import InternalError, NotFound, ValidationError
from app.models.availability import AvailabilityRule, AvailabilityRulePublic
from app.models.provider import Provider, ProviderPublic
from app.models.service import Service, ServicePublic

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"^[a-z0-9-]+$", re.IGNORECASE)
MAX_SLUG_LENGTH = 100


def validate_slug(slug: str) -> str:
    if not slug:
        raise ValidationError("Professional slug is required")
    if len(slug) > MAX_SLUG_LENGTH:
        raise ValidationError("Slug too long")
    if not _SLUG_RE.match(slug):
        raise ValidationError("Invalid slug format")
    return slug.lower()


async def get_public_booking_data(session: AsyncSession, slug: str) -> dict:
    """Profile, active services and weekly availability of a publicly bookable provider."""
    slug = validate_slug(slug)
    try:
        result = await bounded(session.execute(select(Provider).where(Provider.slug == slug)))
        provider = result.scalar_one_or_none()
        if not provider or not provider.is_publicly_bookable:
            raise NotFound("Professional not found")

        services = await bounded(
            session.execute(
                select(Service)
                .where(Service.provider_id == provider.id, Service.is_active.is_(True))
                .order_by(Service.name)
            )
        )
        rules = await bounded(
            session.execute(
                select(AvailabilityRule)
                .where(
                    AvailabilityRule.provider_id == provider.id,
                    AvailabilityRule.is_active.is_(True),
                )
                .order_by(AvailabilityRule.day_of_week, AvailabilityRule.start_time)
            )
        )
    except SQLAlchemyError as e:
        logger.exception("Loading booking data for %s failed: %s", slug, e)
        raise InternalError("booking data query failed") from e

    service_list = [ServicePublic.model_validate(s, from_attributes=True) for s in services.scalars()]
    logger.info("Returning booking data for provider=%s (%d services)", provider.id, len(service_list))
    return {
        "professional": ProviderPublic.model_validate(provider, from_attributes=True),
        "services": service_list,
        "availability": [
            AvailabilityRulePublic.model_validate(r, from_attributes=True) for r in rules.scalars()
        ],
    }
