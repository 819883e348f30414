"""
Default notification transports.

Email and SMS delivery belong to other services; these implementations
only log, and are what a development deployment is wired with. Links and
codes are logged at DEBUG so they are available locally but never reach
production logs.
"""

import logging

logger = logging.getLogger(__name__)


class LoggingEmailSender:
    """Email sender that writes messages to the log."""

    def send_verification_email(self, recipient: str, display_name: str, link: str) -> None:
        logger.info(f"Verification email for {display_name or recipient} sent to {recipient}")
        logger.debug(f"Verification link for {recipient}: {link}")

    def send_password_reset_email(self, recipient: str, display_name: str, link: str) -> None:
        logger.info(f"Password reset email for {display_name or recipient} sent to {recipient}")
        logger.debug(f"Password reset link for {recipient}: {link}")

    def send_welcome_email(self, recipient: str, display_name: str, link: str) -> None:
        logger.info(f"Welcome email for {display_name or recipient} sent to {recipient}")


class LoggingSmsSender:
    def send_verification_code(self, phone: str, code: str) -> None:
        logger.info(f"Verification SMS sent to ***{phone[-4:]}")
        logger.debug(f"Verification code for ***{phone[-4:]}: {code}")


class LoggingNotifier:
    def notify_new_user(self, user_id: str, email: str, display_name: str) -> None:
        logger.info(
            f"New user registered: {display_name} ({email})",
            extra={"registered_user_id": user_id},
        )
