"""
Email collaborator - one-time code delivery.

``CourierEmailService`` talks to the Courier ``/send`` API over httpx.
``LoggingEmailService`` is used when no API key is configured: it logs the
message instead of sending it, which keeps local development usable.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from errors import ExternalServiceError

logger = logging.getLogger(__name__)


class EmailService(ABC):

    @abstractmethod
    async def send(self, address: str, template: str, data: Dict[str, Any]) -> None:
        """Deliver a templated message.

        Raises:
            ExternalServiceError: delivery failed
        """

    async def send_otp_email(
        self, address: str, code: str, expiration_minutes: int = 5, user_name: Optional[str] = None
    ) -> None:
        await self.send(
            address,
            self.otp_template,
            {"otpCode": code, "expirationMinutes": str(expiration_minutes), "userName": user_name},
        )

    @property
    def otp_template(self) -> str:
        return "otp"

    async def close(self) -> None:
        pass


class CourierEmailService(EmailService):
    """Courier (https://www.courier.com) transactional email."""

    def __init__(self, api_key: str, otp_template: str, base_url: str = "https://api.courier.com", timeout: float = 10.0):
        self._otp_template = otp_template or "otp"
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    @property
    def otp_template(self) -> str:
        return self._otp_template

    async def send(self, address: str, template: str, data: Dict[str, Any]) -> None:
        body = {
            "message": {
                "to": {"email": address},
                "template": template,
                "data": data,
                "routing": {"method": "single", "channels": ["email"]},
            }
        }
        try:
            resp = await self._client.post("/send", json=body)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ExternalServiceError(
                "Email provider rejected the message",
                details=e.response.text[:200],
                service="email",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError("Email provider unreachable", details=str(e), service="email") from e

        logger.info(f"Email sent: template={template} to={address}")

    async def close(self) -> None:
        await self._client.aclose()


class LoggingEmailService(EmailService):
    """Development stand-in that only logs outgoing messages."""

    async def send(self, address: str, template: str, data: Dict[str, Any]) -> None:
        logger.warning(f"Email not sent (no provider configured): template={template} to={address} data={data}")


def build_email_service(config) -> EmailService:
    if config.courier_api_key:
        return CourierEmailService(
            api_key=config.courier_api_key,
            otp_template=config.courier_template_otp,
            base_url=config.courier_base_url,
        )
    logger.warning("COURIER_API_KEY not set, one-time codes will only be logged")
    return LoggingEmailService()
