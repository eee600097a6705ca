"""Mail-Transporte für Report-Benachrichtigungen.

- SmtpTransport: klassisches SMTP (STARTTLS optional), blockierender
  Versand läuft via asyncio.to_thread.
- HttpMailTransport: JSON-POST an eine Resend-kompatible Mail-API.

Beide nehmen ``{from, to, subject, html, attachments}`` entgegen und
geben eine Delivery-ID zurück oder werfen NotificationError.
"""

from __future__ import annotations

import asyncio
import base64
import mimetypes
import smtplib
from email.message import EmailMessage
from email.utils import make_msgid
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx

from reportd.core.errors import NotificationError

if TYPE_CHECKING:
    from reportd.config import MailConfig


def _recipients(message: dict[str, Any]) -> list[str]:
    to = message.get("to") or []
    return [to] if isinstance(to, str) else list(to)


class SmtpTransport:
    """Versand über SMTP."""

    def __init__(self, config: MailConfig) -> None:
        self._config = config

    def _build(self, message: dict[str, Any]) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = message["from"]
        msg["To"] = ", ".join(_recipients(message))
        msg["Subject"] = message["subject"]
        msg["Message-ID"] = make_msgid(domain="reportd")
        msg.set_content("Dieser Report-Hinweis benötigt einen HTML-fähigen Mail-Client.")
        msg.add_alternative(message["html"], subtype="html")

        for attachment in message.get("attachments", []):
            path = Path(attachment["path"])
            ctype, _ = mimetypes.guess_type(path.name)
            maintype, _, subtype = (ctype or "application/octet-stream").partition("/")
            msg.add_attachment(
                path.read_bytes(),
                maintype=maintype,
                subtype=subtype,
                filename=attachment.get("filename", path.name),
            )
        return msg

    def _send_sync(self, message: dict[str, Any]) -> str:
        cfg = self._config
        msg = self._build(message)
        with smtplib.SMTP(cfg.host, cfg.port, timeout=cfg.timeout_seconds) as smtp:
            if cfg.use_tls:
                smtp.starttls()
            if cfg.username:
                smtp.login(cfg.username, cfg.password)
            smtp.send_message(msg)
        return str(msg["Message-ID"])

    async def send_mail(self, message: dict[str, Any]) -> str:
        try:
            return await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(
                f"SMTP-Versand fehlgeschlagen: {exc}",
                details={"host": self._config.host, "port": self._config.port},
            ) from exc


class HttpMailTransport:
    """Versand über eine HTTP-Mail-API (Bearer-Token, JSON-Body)."""

    def __init__(self, config: MailConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client

    def _payload(self, message: dict[str, Any]) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "from": message["from"],
            "to": _recipients(message),
            "subject": message["subject"],
            "html": message["html"],
        }
        attachments = []
        for attachment in message.get("attachments", []):
            path = Path(attachment["path"])
            attachments.append({
                "filename": attachment.get("filename", path.name),
                "content": base64.b64encode(path.read_bytes()).decode("ascii"),
            })
        if attachments:
            payload["attachments"] = attachments
        return payload

    async def send_mail(self, message: dict[str, Any]) -> str:
        headers = {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
        }
        try:
            payload = self._payload(message)
            if self._client is not None:
                resp = await self._client.post(self._config.api_url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._config.timeout_seconds) as client:
                    resp = await client.post(self._config.api_url, json=payload, headers=headers)
            resp.raise_for_status()
        except (httpx.HTTPError, OSError) as exc:
            raise NotificationError(
                f"Mail-API-Versand fehlgeschlagen: {exc}",
                details={"api_url": self._config.api_url},
            ) from exc
        try:
            body = resp.json()
        except ValueError:
            body = {}
        return str(body.get("id", "")) if isinstance(body, dict) else ""
