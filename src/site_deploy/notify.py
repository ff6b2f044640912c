"""Run notifications: one message per pipeline run, on success or failure."""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from botocore.exceptions import BotoCoreError, ClientError

from site_deploy.models import PipelineReport
from site_deploy.settings import DEFAULT_BODY_TEMPLATE, DEFAULT_SUBJECT_TEMPLATE

logger = logging.getLogger(__name__)


class _Fields(dict):
    """Template fields; unknown placeholders render as '-' instead of raising."""

    def __missing__(self, key):
        return "-"


class Notifier(ABC):
    """Base class for notification backends."""

    def __init__(self, app_name: str = "site-deploy",
                 subject_template: str = DEFAULT_SUBJECT_TEMPLATE,
                 body_template: str = DEFAULT_BODY_TEMPLATE):
        self.app_name = app_name
        self.subject_template = subject_template
        self.body_template = body_template

    def fields(self, report: PipelineReport) -> Dict[str, Any]:
        return _Fields(
            app_name=self.app_name,
            status=report.status.value.upper(),
            branch=report.branch,
            build_id=report.build_id,
            image=report.image.uri if report.image else "-",
            host=report.host or "-",
            stage=report.failed_stage.value if report.failed_stage else "-",
            error=report.error or "-",
        )

    def render(self, report: PipelineReport) -> Tuple[str, str]:
        """Render (subject, body) for a report."""
        fields = self.fields(report)
        return (
            self.subject_template.format_map(fields),
            self.body_template.format_map(fields),
        )

    def notify(self, report: PipelineReport) -> bool:
        """Send the notification. Returns False if rendering or sending failed; never raises."""
        try:
            subject, body = self.render(report)
            self.send(subject, body)
            return True
        except Exception as e:
            logger.error(f"Failed to send {report.status.value} notification: {e}")
            return False

    @abstractmethod
    def send(self, subject: str, body: str) -> None:
        pass


class SESNotifier(Notifier):
    """Send notifications as email through Amazon SES."""

    def __init__(self, recipient: str, sender: str, ses_client: Optional[Any] = None, **kwargs):
        super().__init__(**kwargs)
        if not recipient or not sender:
            raise ValueError("SES notifications require both a recipient and a sender")
        self.recipient = recipient
        self.sender = sender
        self._ses_client = ses_client

    @property
    def ses_client(self):
        if self._ses_client is None:
            from site_deploy.aws_clients import get_ses_client
            self._ses_client = get_ses_client()
        return self._ses_client

    def send(self, subject: str, body: str) -> None:
        try:
            response = self.ses_client.send_email(
                Source=self.sender,
                Destination={'ToAddresses': [self.recipient]},
                Message={
                    'Subject': {'Data': subject, 'Charset': 'UTF-8'},
                    'Body': {'Text': {'Data': body, 'Charset': 'UTF-8'}},
                },
            )
        except (BotoCoreError, ClientError) as e:
            raise RuntimeError(f"SES send_email to {self.recipient} failed: {e}") from e

        logger.info(f"Sent notification to {self.recipient} (MessageId: {response.get('MessageId')})")


class LogNotifier(Notifier):
    """Write notifications to the log."""

    def send(self, subject: str, body: str) -> None:
        logger.info(f"Notification: {subject}\n{body}")


class NullNotifier(Notifier):
    """Notifications disabled."""

    def notify(self, report: PipelineReport) -> bool:
        logger.debug("Notifications disabled; skipping")
        return True

    def send(self, subject: str, body: str) -> None:
        pass


class NotifierFactory:
    """Factory to initialize the notifier for the configured backend"""

    @staticmethod
    def get_notifier(settings) -> Notifier:
        template_kwargs = {
            'app_name': settings.app_name,
            'subject_template': settings.notify_subject_template,
            'body_template': settings.notify_body_template,
        }

        backend = settings.notify_backend
        if backend == "ses":
            return SESNotifier(
                recipient=settings.notify_recipient,
                sender=settings.notify_sender,
                **template_kwargs,
            )
        if backend == "log":
            return LogNotifier(**template_kwargs)
        if backend == "none":
            return NullNotifier(**template_kwargs)

        raise ValueError(f"Invalid notify_backend: {backend}. Choose from ['ses', 'log', 'none']")
