"""Email отправщик уведомлений для Coberturas."""

import asyncio
import re
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from core.logging.logger import logger
from core.config.settings import settings


class EmailNotificationSender:
    """Отправщик уведомлений через Email (SMTP)."""

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: Optional[int] = None,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        smtp_from_email: Optional[str] = None,
        smtp_from_name: Optional[str] = None
    ):
        """
        Инициализация отправщика.

        Args:
            smtp_host: SMTP хост (опционально, из settings)
            smtp_port: SMTP порт (опционально, из settings)
            smtp_user: SMTP пользователь (опционально, из settings)
            smtp_password: SMTP пароль (опционально, из settings)
            smtp_from_email: Email отправителя (опционально, из settings)
            smtp_from_name: Имя отправителя (опционально, из settings)
        """
        self.smtp_host = smtp_host or settings.smtp_host
        self.smtp_port = smtp_port or settings.smtp_port
        self.smtp_user = smtp_user or settings.smtp_user
        self.smtp_password = smtp_password or settings.smtp_password
        self.smtp_from_email = smtp_from_email or settings.smtp_from_email or self.smtp_user
        self.smtp_from_name = smtp_from_name or settings.smtp_from_name
        self.smtp_use_tls = settings.smtp_use_tls
        self.smtp_use_ssl = settings.smtp_use_ssl
        self.smtp_timeout = settings.smtp_timeout

        self.max_retries = 3
        self.retry_delay = 2  # секунды

        if not self.is_configured():
            logger.warning("Email sender not fully configured (missing SMTP credentials)")

    async def send(self, to_email: str, subject: str, html_content: str) -> bool:
        """
        Отправка письма.

        Без SMTP-настроек письмо только пишется в лог.

        Returns:
            True если отправлено успешно
        """
        if not self.is_configured():
            logger.info(
                "Email not sent (SMTP not configured)",
                to_email=to_email,
                subject=subject,
                body=self._html_to_plain(html_content),
            )
            return False

        message = self._create_email_message(to_email, subject, html_content)
        success = await self._send_with_retry(to_email, message)
        if success:
            logger.info("Email sent successfully", to_email=to_email, subject=subject)
        else:
            logger.error("Failed to send email", to_email=to_email, subject=subject)
        return success

    def _create_email_message(self, to_email: str, subject: str, html_content: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = f"{self.smtp_from_name} <{self.smtp_from_email}>"
        message["To"] = to_email

        message.attach(MIMEText(self._html_to_plain(html_content), "plain", "utf-8"))
        message.attach(MIMEText(html_content, "html", "utf-8"))
        return message

    @staticmethod
    def _html_to_plain(html: str) -> str:
        """Конвертация HTML в plain text (упрощенно)."""
        text = re.sub(r'<br\s*/?>', '\n', html)
        text = re.sub(r'</?(p|h\d).*?>', '\n', text)
        text = re.sub(r'<.*?>', '', text)
        text = re.sub(r'\n\s*\n', '\n', text)
        return text.strip()

    def _deliver(self, message: MIMEMultipart) -> None:
        """Синхронная отправка через smtplib."""
        if self.smtp_use_ssl:
            server = smtplib.SMTP_SSL(
                self.smtp_host,
                self.smtp_port,
                timeout=self.smtp_timeout,
                context=ssl.create_default_context()
            )
        else:
            server = smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=self.smtp_timeout)
            if self.smtp_use_tls:
                server.starttls(context=ssl.create_default_context())
        try:
            server.login(self.smtp_user, self.smtp_password)
            server.send_message(message)
        finally:
            server.quit()

    async def _send_with_retry(self, to_email: str, message: MIMEMultipart) -> bool:
        """Отправка email с повторными попытками при обрыве соединения."""
        for attempt in range(self.max_retries):
            try:
                await asyncio.to_thread(self._deliver, message)
                return True

            except (smtplib.SMTPAuthenticationError, smtplib.SMTPRecipientsRefused) as e:
                # Не повторяем
                logger.error("SMTP delivery refused", to_email=to_email, error=str(e))
                return False

            except (smtplib.SMTPServerDisconnected, smtplib.SMTPConnectError, OSError) as e:
                logger.warning(
                    f"SMTP connection error, attempt {attempt + 1}/{self.max_retries}",
                    to_email=to_email,
                    error=str(e)
                )
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(self.retry_delay * (attempt + 1))

        return False

    def is_configured(self) -> bool:
        return all([
            self.smtp_host,
            self.smtp_user,
            self.smtp_password,
            self.smtp_from_email
        ])


_email_sender: Optional[EmailNotificationSender] = None


def get_email_sender() -> EmailNotificationSender:
    """Ленивый singleton отправщика."""
    global _email_sender
    if _email_sender is None:
        _email_sender = EmailNotificationSender()
    return _email_sender
