"""Merge workspace availability with a provider's override layer"""

import logging
from typing import Optional

from .schemas import AvailabilitySettings, EffectiveSchedule

logger = logging.getLogger(__name__)


def merge_schedule(
    settings: AvailabilitySettings, provider_id: Optional[str] = None
) -> EffectiveSchedule:
    """
    Build the effective schedule for one evaluation.

    Provider days replace workspace days wholesale (a provider's "Mon" entry
    is the whole Monday, not a field-level patch); days the provider does not
    define fall through to the workspace. Individual overrides merge key by
    key with provider entries winning.
    """
    timesheet = dict(settings.timesheet)
    individual = dict(settings.individual)

    layer = settings.providers.get(str(provider_id)) if provider_id else None
    if provider_id and layer is None:
        logger.debug(f"No availability overrides for provider {provider_id}, using workspace schedule")

    if layer is not None:
        if layer.timesheet:
            timesheet.update(layer.timesheet)
        if layer.individual:
            individual.update(layer.individual)

    return EffectiveSchedule(timesheet=timesheet, individual=individual)
