import asyncio
import logging
from typing import List, Union

import resend

from ...application.ports.email_sender import EmailSender

logger = logging.getLogger(__name__)


class ResendEmailSender(EmailSender):
    def __init__(self, api_key: str, from_address: str) -> None:
        resend.api_key = api_key
        self.from_address = from_address

    async def send(self, to: Union[str, List[str]], subject: str, html: str) -> None:
        recipients = [to] if isinstance(to, str) else list(to)
        logger.info(f"Sending email via Resend to: {recipients}")
        email_data = {
            "from": self.from_address,
            "to": recipients,
            "subject": subject,
            "html": html,
        }
        # The Resend SDK is blocking
        response = await asyncio.to_thread(resend.Emails.send, email_data)
        logger.info(f"Email sent successfully via Resend: {response}")
