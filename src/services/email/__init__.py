"""E-mail services."""

from src.services.email.resend_service import ResendEmailService

__all__ = ["ResendEmailService"]
