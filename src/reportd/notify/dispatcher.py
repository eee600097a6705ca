"""NotificationDispatcher -- best-effort Mail-Versand nach einem Report-Lauf.

Ohne Konfiguration ist ``send`` ein geloggtes No-op, Mail ist also nie
eine harte Abhängigkeit der Pipeline. Fehler beim PDF-Rendern führen zu
einer Nachricht nur mit Link, Fehler beim Versand werden geloggt und
nie weitergereicht.
"""

from __future__ import annotations

import html
from datetime import UTC
from typing import TYPE_CHECKING, Any

from reportd.notify.transports import HttpMailTransport, SmtpTransport
from reportd.utils.logging import get_logger

if TYPE_CHECKING:
    from pathlib import Path

    from reportd.config import MailConfig
    from reportd.models import ReportRecord, Schedule
    from reportd.pipeline.protocols import MailTransport, PdfRenderer

log = get_logger(__name__)


def build_transport(config: MailConfig) -> MailTransport:
    if config.transport == "http":
        return HttpMailTransport(config)
    return SmtpTransport(config)


class NotificationDispatcher:
    """Versendet Report-Hinweise an die Empfänger eines Schedules."""

    def __init__(
        self,
        reports_dir: Path,
        *,
        config: MailConfig | None = None,
        transport: MailTransport | None = None,
        pdf_renderer: PdfRenderer | None = None,
    ) -> None:
        self._reports_dir = reports_dir
        self._pdf_renderer = pdf_renderer
        self._config: MailConfig | None = None
        self._transport: MailTransport | None = None
        self.configure(config, transport=transport)

    @property
    def configured(self) -> bool:
        return self._config is not None and self._transport is not None

    def configure(
        self,
        config: MailConfig | None,
        *,
        transport: MailTransport | None = None,
    ) -> None:
        """Setzt oder ersetzt die Mail-Konfiguration. ``None`` deaktiviert den Versand.

        Args:
            config: Mail-Konfiguration; ``enabled=False`` zählt wie None.
            transport: Optionaler Transport (sonst aus ``config.transport`` gebaut).
        """
        if config is None or not config.enabled:
            self._config = None
            self._transport = None
            log.debug("notifications_disabled")
            return
        self._config = config
        self._transport = transport or build_transport(config)
        log.info("notifications_configured", transport=config.transport)

    def report_url(self, record: ReportRecord, schedule: Schedule) -> str:
        """Link auf den Report: ``<base_url>/charts/<verzeichnis>`` oder file://-URI."""
        artifact = self._reports_dir / record.path
        if schedule.base_url:
            return f"{schedule.base_url.rstrip('/')}/charts/{artifact.name}"
        return artifact.resolve().as_uri()

    def build_message(
        self,
        record: ReportRecord,
        schedule: Schedule,
        attachments: list[dict[str, Any]] | None = None,
    ) -> dict[str, Any]:
        """Baut die Transport-Nachricht ``{from, to, subject, html, attachments}``."""
        label = html.escape(schedule.name or schedule.id)
        url = html.escape(self.report_url(record, schedule), quote=True)
        generated = record.timestamp.astimezone(UTC).strftime("%Y-%m-%d %H:%M UTC")
        body = (
            f"<h2>Scheduled Report: {label}</h2>"
            f"<p>Your scheduled report <strong>{html.escape(record.title)}</strong> has been generated.</p>"
            f'<p><a href="{url}">View Report</a></p>'
            f"<p>Generated on: {generated}</p>"
            "<hr><p><small>This is an automated message from reportd.</small></p>"
        )
        return {
            "from": self._config.sender if self._config else "",
            "to": list(schedule.recipients),
            "subject": f"Scheduled Report: {schedule.name or schedule.id}",
            "html": body,
            "attachments": attachments or [],
        }

    async def _render_pdf(self, record: ReportRecord) -> list[dict[str, Any]]:
        if self._pdf_renderer is None or self._config is None or not self._config.attach_pdf:
            return []
        artifact = self._reports_dir / record.path
        html_path = artifact / "index.html" if artifact.is_dir() else artifact
        pdf_dir = artifact if artifact.is_dir() else artifact.parent
        try:
            pdf_path = await self._pdf_renderer.generate_pdf(
                html_path, pdf_dir / f"{artifact.stem}.pdf", record.title,
            )
        except Exception as exc:
            log.warning("pdf_render_failed", report_id=record.id, error=str(exc))
            return []
        return [{"filename": f"{record.title}.pdf", "path": str(pdf_path)}]

    async def send(self, record: ReportRecord, schedule: Schedule) -> str | None:
        """Versendet den Report-Hinweis. Wirft nie.

        Returns:
            Delivery-ID oder None (nicht konfiguriert, keine Empfänger, Fehler).
        """
        transport = self._transport
        if transport is None:
            log.info("notification_skipped_unconfigured", schedule_id=schedule.id)
            return None
        if not schedule.recipients:
            log.info("notification_skipped_no_recipients", schedule_id=schedule.id)
            return None

        try:
            attachments = await self._render_pdf(record)
            message = self.build_message(record, schedule, attachments)
            delivery_id = await transport.send_mail(message)
        except Exception as exc:
            log.error(
                "notification_send_failed",
                schedule_id=schedule.id,
                report_id=record.id,
                error=str(exc),
            )
            return None

        log.info(
            "notification_sent",
            schedule_id=schedule.id,
            recipients=len(schedule.recipients),
            delivery_id=delivery_id,
        )
        return delivery_id
