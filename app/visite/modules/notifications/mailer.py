from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

logger = logging.getLogger(__name__)


class MailerError(RuntimeError):
    pass


@dataclass(frozen=True)
class SmtpMailer:
    host: str
    port: int
    username: str
    password: str
    from_address: str
    use_tls: bool = True
    timeout_seconds: int = 15

    @property
    def configured(self) -> bool:
        return bool(self.host and self.username and self.password)

    def _connect(self) -> smtplib.SMTP:
        server = smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds)
        if self.use_tls:
            server.starttls()
        server.login(self.username, self.password)
        return server

    def send(self, to: str, subject: str, body: str, html: str | None = None) -> None:
        if not self.configured:
            raise MailerError("Email notifications are not configured (SMTP_HOST/SMTP_USER/SMTP_PASS).")

        if html:
            msg = MIMEMultipart("alternative")
            msg.attach(MIMEText(body, "plain", "utf-8"))
            msg.attach(MIMEText(html, "html", "utf-8"))
        else:
            msg = MIMEText(body, "plain", "utf-8")
        msg["Subject"] = subject
        msg["From"] = self.from_address or self.username
        msg["To"] = to

        try:
            with self._connect() as server:
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            raise MailerError(f"SMTP delivery to {to} failed: {e}") from e
        logger.info("Email sent to %s (subject=%r)", to, subject)

    def test_connection(self) -> bool:
        if not self.configured:
            return False
        try:
            with self._connect() as server:
                server.noop()
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP connection test failed: %s", e)
            return False
        return True


def mailer_from_config(config: dict) -> SmtpMailer:
    return SmtpMailer(
        host=(config.get("SMTP_HOST") or "").strip(),
        port=int(config.get("SMTP_PORT") or 587),
        username=(config.get("SMTP_USER") or "").strip(),
        password=config.get("SMTP_PASS") or "",
        from_address=(config.get("EMAIL_FROM") or "").strip(),
        use_tls=bool(config.get("SMTP_USE_TLS", True)),
    )
