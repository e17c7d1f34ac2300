# Models package - normalized database models
from pipeline_journey.models.lead import Lead
from pipeline_journey.models.pipeline import PipelineStage, LeadStageChange
from pipeline_journey.models.calendar import CalendarEvent
from pipeline_journey.models.settings import SystemSettings
from pipeline_journey.models.journey import (
    JourneyMessageTemplate, ScheduledMessage, DispatchHistoryEntry
)
