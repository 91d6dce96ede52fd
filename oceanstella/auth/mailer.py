"""
Ocean Stella - Verification Code Mailer

Sends one-time verification codes over SMTP.

Modes:
    - smtp: Send via the configured SMTP server (SSL on 465, STARTTLS otherwise)
    - console: Log the code instead (development only, when SMTP is unset)
"""

import logging
from email.mime.text import MIMEText
from typing import Optional

import aiosmtplib

from oceanstella.config import Settings
from oceanstella.errors import DependencyError
from oceanstella.logging_config import redact_email

logger = logging.getLogger(__name__)


OTP_SUBJECT = "Ocean Stella verification code"
OTP_BODY = "Your verification code is: {code}\n\nThis code expires in 10 minutes."


class EmailDispatchError(DependencyError):
    """Raised when a verification email cannot be delivered."""
    default_code = "EMAIL_DISPATCH_FAILED"


class OtpMailer:
    """
    Delivers verification codes.

    Constructed once at startup from settings and shared by all requests.
    """

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        from_email: Optional[str] = None,
        allow_console: bool = True,
        timeout: float = 15.0,
    ):
        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._smtp_user = smtp_user
        self._smtp_password = smtp_password
        self._from_email = from_email or smtp_user
        self._allow_console = allow_console
        self._timeout = timeout

        self._mode = "smtp" if self.is_configured else "console"
        if self._mode == "console":
            if allow_console:
                logger.warning("SMTP not configured, verification codes will be logged")
            else:
                logger.error("SMTP not configured, verification emails will fail")

    @classmethod
    def from_settings(cls, settings: Settings) -> "OtpMailer":
        return cls(
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            smtp_user=settings.SMTP_USER,
            smtp_password=settings.SMTP_PASS,
            from_email=settings.EMAIL_FROM,
            allow_console=not settings.is_production,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._smtp_host and self._smtp_user and self._smtp_password)

    @property
    def mode(self) -> str:
        return self._mode

    async def send_otp(self, to: str, code: str) -> None:
        """
        Send a verification code.

        Raises:
            EmailDispatchError: SMTP failed, or SMTP is missing in production
        """
        if self._mode == "console":
            if not self._allow_console:
                raise EmailDispatchError(
                    "Could not send verification email. Please check SMTP settings."
                )
            logger.info("DEV OTP for %s => %s", redact_email(to), code)
            return

        message = MIMEText(OTP_BODY.format(code=code), "plain")
        message["Subject"] = OTP_SUBJECT
        message["From"] = self._from_email
        message["To"] = to

        # SSL on 465, STARTTLS everywhere else
        use_tls = self._smtp_port == 465

        try:
            await aiosmtplib.send(
                message,
                hostname=self._smtp_host,
                port=self._smtp_port,
                username=self._smtp_user,
                password=self._smtp_password,
                use_tls=use_tls,
                start_tls=not use_tls,
                timeout=self._timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error("Failed to send OTP email to %s: %s", redact_email(to), e)
            raise EmailDispatchError(
                "Could not send verification email. Please check SMTP settings."
            )

        logger.info("OTP email sent to %s", redact_email(to))
