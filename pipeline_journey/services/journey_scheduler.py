"""
Journey scheduler - turns a stage entry into durable scheduled messages.
"""
import logging
from datetime import timedelta
from typing import List, Optional, Union

from sqlmodel.ext.asyncio.session import AsyncSession

from pipeline_journey.config import Settings, settings as default_settings
from pipeline_journey.core.clock import to_naive_utc
from pipeline_journey.core.exceptions import NotFoundError, ValidationError
from pipeline_journey.models.enums import DelayUnit
from pipeline_journey.models.journey import JourneyMessageTemplate, ScheduledMessage
from pipeline_journey.repositories.lead_repo import LeadRepository
from pipeline_journey.repositories.schedule_repo import ScheduledMessageRepository
from pipeline_journey.repositories.settings_repo import SystemSettingsRepository
from pipeline_journey.repositories.template_repo import TemplateRepository
from pipeline_journey.services.events import StageEntered

logger = logging.getLogger(__name__)


def normalize_delay(value: int, unit: Union[DelayUnit, str]) -> timedelta:
    """Template delay as a whole-second timedelta."""
    if value is None or value <= 0:
        raise ValidationError("Delay must be a positive integer", "delay_value")
    try:
        unit = DelayUnit(unit)
    except ValueError:
        raise ValidationError(f"Unknown delay unit '{unit}'", "delay_unit")
    return unit.to_timedelta(value)


def is_usable_webhook_url(url: Optional[str]) -> bool:
    if not url or not url.strip():
        return False
    return url.strip().lower().startswith(("http://", "https://"))


class WebhookUrlResolver:
    """
    Picks the destination for a message at schedule time.

    Precedence: template override, then the system settings row, then the
    JOURNEY_WEBHOOK_URL setting. Returns None when none of them is usable.
    """

    def __init__(self, session: AsyncSession, config: Optional[Settings] = None):
        self.settings_repo = SystemSettingsRepository(session)
        self.config = config or default_settings
        self._system_url: Optional[str] = None
        self._system_loaded = False

    async def _get_system_url(self) -> Optional[str]:
        if not self._system_loaded:
            self._system_url = await self.settings_repo.get_journey_webhook_url()
            self._system_loaded = True
        return self._system_url

    async def resolve(self, template: JourneyMessageTemplate) -> Optional[str]:
        if is_usable_webhook_url(template.webhook_url):
            return template.webhook_url.strip()

        system_url = await self._get_system_url()
        if is_usable_webhook_url(system_url):
            return system_url.strip()

        if is_usable_webhook_url(self.config.JOURNEY_WEBHOOK_URL):
            return self.config.JOURNEY_WEBHOOK_URL.strip()

        return None


class JourneyScheduler:
    """
    Materializes one ScheduledMessage per active template of the entered stage.

    Rows are flushed into the caller's session, so they commit or roll back
    together with the stage move that produced the event.
    """

    def __init__(
        self,
        session: AsyncSession,
        config: Optional[Settings] = None,
        resolver: Optional[WebhookUrlResolver] = None
    ):
        self.lead_repo = LeadRepository(session)
        self.template_repo = TemplateRepository(session)
        self.schedule_repo = ScheduledMessageRepository(session)
        self.resolver = resolver or WebhookUrlResolver(session, config)

    async def on_stage_entered(self, event: StageEntered) -> List[ScheduledMessage]:
        entered_at = to_naive_utc(event.entered_at)
        log_extra = {"lead_id": str(event.lead_id), "stage_id": event.stage_id}

        # Redelivered event: the entry was already materialized
        existing = await self.schedule_repo.count_for_entry(event.lead_id, event.stage_id, entered_at)
        if existing:
            logger.info(
                f"Journey for lead {event.lead_id} entering '{event.stage_id}' already scheduled",
                extra=log_extra
            )
            return []

        templates = await self.template_repo.list_for_stage(event.stage_id)
        if not templates:
            return []

        lead = await self.lead_repo.get(event.lead_id)
        if not lead:
            raise NotFoundError("Lead", str(event.lead_id))

        messages = []
        for template in templates:
            webhook_url = await self.resolver.resolve(template)
            if webhook_url is None:
                logger.warning(
                    f"No webhook configured for template {template.id}; message will fail at dispatch",
                    extra=log_extra
                )

            messages.append(ScheduledMessage(
                lead_id=lead.id,
                stage_id=event.stage_id,
                template_id=template.id,
                entered_at=entered_at,
                lead_name=lead.name,
                lead_phone=lead.phone,
                lead_email=lead.email,
                message_title=template.title,
                message_content=template.content,
                message_type=template.message_type,
                media_url=template.media_url,
                template_order=template.order,
                webhook_url=webhook_url,
                scheduled_for=entered_at + normalize_delay(template.delay_value, template.delay_unit)
            ))

        await self.schedule_repo.add_all(messages)
        logger.info(
            f"Scheduled {len(messages)} journey message(s) for lead {lead.id} in '{event.stage_id}'",
            extra=log_extra
        )
        return messages
