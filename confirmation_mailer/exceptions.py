"""Errors raised by the confirmation mailer"""

from typing import Optional


class MailerError(Exception):
    """Base class for mailer failures"""


class RenderError(MailerError):
    """The confirmation template could not be loaded or rendered"""


class TransportError(MailerError):
    """The mail provider could not be reached or refused to authenticate"""

    def __init__(
        self, message: str, cause: Optional[BaseException] = None, smtp_code: Optional[int] = None
    ):
        super().__init__(message)
        self.cause = cause
        self.smtp_code = smtp_code
