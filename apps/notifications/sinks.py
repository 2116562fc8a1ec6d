import logging
import re

from django.conf import settings
from django.core.mail import send_mail
from twilio.rest import Client as TwilioClient

logger = logging.getLogger(__name__)

PHONE_NUMBER_RE = re.compile(r'^\+\d{9,15}$')


class EmailSink:
    name = 'email'

    def send(self, recipient, subject, message):
        if not recipient['email']:
            logger.info(f"User {recipient['id']} has no email address, email skipped")
            return False
        send_mail(
            subject=subject,
            message=message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient['email']],
            fail_silently=False,
        )
        logger.info(f"Email notification sent to {recipient['email']}")
        return True


class SmsSink:
    name = 'sms'

    def __init__(self, client=None):
        self._client = client

    @property
    def configured(self):
        return bool(self._client or (settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN))

    @property
    def client(self):
        if self._client is None:
            self._client = TwilioClient(settings.TWILIO_ACCOUNT_SID, settings.TWILIO_AUTH_TOKEN)
        return self._client

    def send(self, recipient, subject, message):
        if not recipient['phone_number'] or not self.configured:
            return False
        if not PHONE_NUMBER_RE.match(recipient['phone_number']):
            logger.warning(f"Invalid phone number format for user {recipient['id']}: {recipient['phone_number']}")
            return False
        self.client.messages.create(
            body=f"ScribeLink: {subject}",
            from_=settings.TWILIO_PHONE_NUMBER,
            to=recipient['phone_number'],
        )
        logger.info(f"SMS notification sent to {recipient['phone_number']}")
        return True
