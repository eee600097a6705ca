"""reportd · Scheduled report engine.

Cron-gesteuerte Neuerzeugung von Visualisierungs-Reports mit
persistenten Schedules und durchsuchbarer Report-Historie.
"""

__version__ = "0.4.0"
