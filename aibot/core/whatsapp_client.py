# aibot/core/whatsapp_client.py

from typing import Dict, Any, Optional
import httpx
import logging

from aibot.core.exceptions import DeliveryError, InvalidArgument, MediaFetchError

logger = logging.getLogger(__name__)


class WhatsAppClient:
    """Client for interacting with WhatsApp Cloud API"""

    def __init__(
        self,
        token: str,
        phone_number_id: str,
        api_version: str = "v19.0",
        timeout: float = 30.0,
    ):
        """Initialize WhatsApp client with credentials"""
        self.token = token
        self.phone_number_id = phone_number_id
        self.timeout = timeout
        self.graph_url = f"https://graph.facebook.com/{api_version}"
        self.base_url = f"{self.graph_url}/{phone_number_id}"
        self.headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    def _prepare_message_payload(self, to: str, message: str) -> Dict[str, Any]:
        """Prepare the text message payload"""
        return {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": message},
        }

    @staticmethod
    def extract_message(body: Any) -> Optional[Dict[str, Any]]:
        """Return entry[0].changes[0].value.messages[0] or None for non-message events"""
        try:
            message = body["entry"][0]["changes"][0]["value"]["messages"][0]
        except (KeyError, IndexError, TypeError):
            return None
        return message if isinstance(message, dict) else None

    async def send_text(self, to: str, body: str) -> Dict[str, Any]:
        """Send a text message to a WhatsApp user."""
        if not to or not to.strip():
            logger.error("Cannot send message: 'to' is null or empty")
            raise InvalidArgument("Recipient phone number is required")
        if not body or not body.strip():
            logger.error("Cannot send message: 'text' is null or empty")
            raise InvalidArgument("Message text is required")

        logger.debug(f"Sending WhatsApp message to {to}: {body[:50]}...")
        return await self._post_message(to, self._prepare_message_payload(to, body))

    async def send_image(
        self, to: str, image_url: str, caption: Optional[str] = None
    ) -> Dict[str, Any]:
        """Send an image message to a WhatsApp user."""
        if not to or not to.strip():
            raise InvalidArgument("Recipient phone number is required")
        if not image_url or not image_url.strip():
            raise InvalidArgument("Image URL is required")

        image: Dict[str, Any] = {"link": image_url}
        if caption:
            image["caption"] = caption

        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "image",
            "image": image,
        }
        logger.debug(f"Sending WhatsApp image to {to}: {image_url}")
        return await self._post_message(to, payload)

    async def _post_message(self, to: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/messages"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, headers=self.headers, json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"Timeout sending message to {to}")
            raise DeliveryError(
                f"Request timed out while sending message to {to}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Failed to send WhatsApp message to {to}: {e}")
            raise DeliveryError(f"Failed to send message: {e}") from e

        if response.status_code >= 400:
            response_body = response.text
            logger.error(f"WhatsApp API error response: {response_body}")
            if response.status_code == 401 and "Session has expired" in response_body:
                logger.error("WhatsApp token has expired. Please update your token.")
            raise DeliveryError(
                f"WhatsApp API error: {response_body}",
                status_code=response.status_code,
            )

        logger.info(f"WhatsApp message sent successfully to {to}")
        try:
            return response.json()
        except ValueError:
            return {"success": True, "raw_response": response.text}

    async def get_media_url(self, media_id: str) -> str:
        """Resolve a WhatsApp media id to its signed download URL"""
        if not media_id:
            raise MediaFetchError("Media id is required")

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(
                    f"{self.graph_url}/{media_id}", headers=self.headers
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise MediaFetchError(f"Could not resolve media {media_id}: {e}") from e

        media_url = data.get("url") if isinstance(data, dict) else None
        if not media_url:
            raise MediaFetchError(f"No download URL returned for media {media_id}")

        logger.debug(f"Media URL: {media_url}")
        return media_url

    async def download_media(self, media_url: str) -> bytes:
        """Download media bytes from a signed WhatsApp URL"""
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, follow_redirects=True
            ) as client:
                response = await client.get(
                    media_url, headers={"Authorization": f"Bearer {self.token}"}
                )
                response.raise_for_status()
        except httpx.HTTPError as e:
            raise MediaFetchError(f"Could not download media: {e}") from e

        return response.content

    async def fetch_media(self, media_id: str) -> bytes:
        """Two-step fetch: media id -> signed URL -> bytes"""
        logger.debug(f"Downloading media ID: {media_id}")
        media_url = await self.get_media_url(media_id)
        return await self.download_media(media_url)
