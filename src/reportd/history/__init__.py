"""reportd history module -- Katalog abgeschlossener Report-Läufe."""

from reportd.history.index import HistoryIndex

__all__ = ["HistoryIndex"]
