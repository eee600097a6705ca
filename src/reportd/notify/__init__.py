"""reportd notify -- optionaler Mail-Versand fertiger Reports."""

from reportd.notify.dispatcher import NotificationDispatcher
from reportd.notify.transports import HttpMailTransport, SmtpTransport

__all__ = ["HttpMailTransport", "NotificationDispatcher", "SmtpTransport"]
