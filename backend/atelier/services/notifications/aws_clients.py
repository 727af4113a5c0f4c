"""
AWS SES client wrapper with retry and error handling.

Sends transactional email for measurement orders. Retries throttling and
connection failures with exponential backoff; permanent rejections fail
immediately.
"""

import time
from typing import Any, Optional

import boto3
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    EndpointConnectionError,
)

from atelier.core.config import get_settings
from atelier.core.logging import get_logger

logger = get_logger(__name__)

NON_RETRYABLE_ERROR_CODES = (
    "MessageRejected",
    "MailFromDomainNotVerified",
    "ConfigurationSetDoesNotExist",
)


class SESClientError(Exception):
    """Raised when an email cannot be handed to SES."""

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.service = "SES"
        self.context = context


class SESClient:
    """
    AWS SES client wrapper.

    Attributes:
        max_retries: Attempts per email before giving up
        retry_backoff: Initial backoff in seconds, doubled per attempt
        from_address: Default sender address
    """

    def __init__(
        self,
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        region_name: Optional[str] = None,
        from_address: Optional[str] = None,
        max_retries: int = 3,
        retry_backoff: float = 1.0,
        client: Any = None,
    ) -> None:
        settings = get_settings()
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.from_address = from_address or settings.ses_from_email
        region = region_name or settings.aws_region

        self._client = client or boto3.client(
            "ses",
            aws_access_key_id=aws_access_key_id or settings.aws_access_key_id,
            aws_secret_access_key=aws_secret_access_key
            or settings.aws_secret_access_key,
            region_name=region,
        )

        logger.info("SES client initialized", region=region, max_retries=max_retries)

    def send_email(
        self,
        to_addresses: list[str],
        subject: str,
        body_text: str,
        body_html: Optional[str] = None,
        from_address: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Send email via SES with retry logic.

        Returns:
            Dictionary containing message ID and delivery status

        Raises:
            SESClientError: If sending fails after retries
        """
        from_address = from_address or self.from_address

        if not to_addresses:
            raise SESClientError(
                "At least one recipient email address is required",
                to_addresses=to_addresses,
            )

        message: dict[str, Any] = {
            "Subject": {"Data": subject, "Charset": "UTF-8"},
            "Body": {"Text": {"Data": body_text, "Charset": "UTF-8"}},
        }
        if body_html:
            message["Body"]["Html"] = {"Data": body_html, "Charset": "UTF-8"}

        send_params: dict[str, Any] = {
            "Source": from_address,
            "Destination": {"ToAddresses": to_addresses},
            "Message": message,
        }

        last_exception: Optional[Exception] = None
        for attempt in range(self.max_retries):
            try:
                response = self._client.send_email(**send_params)
                message_id = response["MessageId"]
                logger.info(
                    "Email sent via SES",
                    message_id=message_id,
                    to_addresses=to_addresses,
                    attempt=attempt + 1,
                )
                return {
                    "message_id": message_id,
                    "status": "sent",
                    "to_addresses": to_addresses,
                    "subject": subject,
                }

            except ClientError as e:
                error_code = e.response.get("Error", {}).get("Code", "Unknown")
                error_message = e.response.get("Error", {}).get("Message", str(e))
                logger.warning(
                    "SES client error",
                    attempt=attempt + 1,
                    error_code=error_code,
                    error_message=error_message,
                )
                last_exception = e

                if error_code in NON_RETRYABLE_ERROR_CODES:
                    raise SESClientError(
                        f"SES error: {error_message}",
                        error_code=error_code,
                        to_addresses=to_addresses,
                    ) from e

            except (BotoConnectionError, EndpointConnectionError, BotoCoreError) as e:
                logger.warning("SES connection error", attempt=attempt + 1, error=str(e))
                last_exception = e

            if attempt < self.max_retries - 1:
                backoff_time = self.retry_backoff * (2**attempt)
                logger.info(
                    "Retrying SES send after backoff",
                    backoff_seconds=backoff_time,
                    attempt=attempt + 1,
                )
                time.sleep(backoff_time)

        raise SESClientError(
            f"Failed to send email after {self.max_retries} attempts",
            to_addresses=to_addresses,
            last_error=str(last_exception),
        ) from last_exception


def get_ses_client(**kwargs: Any) -> SESClient:
    """Factory for an SES client using application settings."""
    return SESClient(**kwargs)
