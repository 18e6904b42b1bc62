"""Background strain polling.

Modules:
    models    — Sample and ScheduleEntry
    collector — StrainCollector: vault token → latest WHOOP cycle → Sample
    scheduler — PollScheduler: one asyncio task per opted-in user
"""

from strainwatch.polling.collector import StrainCollector
from strainwatch.polling.models import Sample, ScheduleEntry
from strainwatch.polling.scheduler import PollScheduler

__all__ = ["Sample", "ScheduleEntry", "StrainCollector", "PollScheduler"]
