"""reportd cron module -- Schedule-Persistenz und zeitgesteuerte Ausführung."""

from reportd.cron.engine import CronEngine, build_trigger, parse_cron_expression
from reportd.cron.store import ScheduleStore

__all__ = ["CronEngine", "ScheduleStore", "build_trigger", "parse_cron_expression"]
