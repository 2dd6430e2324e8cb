# aibot/services/webhook_service.py

from fastapi import HTTPException
from fastapi.responses import PlainTextResponse
from typing import Any, Dict, Optional
import logging

from aibot.core.exceptions import MediaFetchError
from aibot.core.media_store import MediaStore
from aibot.core.whatsapp_client import WhatsAppClient
from aibot.data_schemas import QueueMessage
from aibot.services.producer import ChatMessageProducer

logger = logging.getLogger(__name__)

EVENT_RECEIVED = "EVENT_RECEIVED"


class WebhookService:
    """
    Turns WhatsApp webhook events into queued chat messages.

    Nothing here talks to the model: text is enqueued as-is, attachments are
    downloaded to local storage first and enqueued by path. The webhook is
    always acknowledged so WhatsApp does not retry the event.
    """

    def __init__(
        self,
        producer: ChatMessageProducer,
        whatsapp: WhatsAppClient,
        media_store: MediaStore,
        verify_token: str,
    ):
        self.producer = producer
        self.whatsapp = whatsapp
        self.media_store = media_store
        self.verify_token = verify_token

    async def verify_webhook(
        self, mode: Optional[str], token: Optional[str], challenge: Optional[str]
    ):
        """Verify webhook for WhatsApp API"""
        if mode == "subscribe" and token and token == self.verify_token:
            logger.info("Webhook verified successfully")
            return PlainTextResponse(content=challenge or "")

        logger.warning(f"Webhook verification failed: mode={mode}")
        raise HTTPException(status_code=403, detail="Invalid verify token")

    async def handle_webhook(self, body: Any):
        """Handle incoming webhook events from WhatsApp"""
        message = self.whatsapp.extract_message(body)
        if message is None:
            logger.debug("No message in webhook payload, acknowledging")
            return PlainTextResponse(content=EVENT_RECEIVED)

        msg_type = message.get("type")
        logger.info(f"Received {msg_type} message from {message.get('from')}")

        try:
            if msg_type == "text":
                await self.handle_text(message)
            elif msg_type == "image":
                await self.handle_image(message)
            elif msg_type == "document":
                await self.handle_document(message)
            else:
                logger.info(f"Ignoring unsupported message type: {msg_type}")
        except MediaFetchError as e:
            logger.error(f"Dropping {msg_type} message, media could not be fetched: {e}")
        except Exception as e:
            logger.error(f"Error processing webhook: {e}", exc_info=True)

        return PlainTextResponse(content=EVENT_RECEIVED)

    async def handle_text(self, message: Dict[str, Any]) -> None:
        sender = message["from"]
        text = (message.get("text") or {}).get("body", "")
        logger.info(f"Text from {sender}: {text[:50]}")

        await self.producer.enqueue(QueueMessage.for_whatsapp_text(sender, text))

    async def handle_image(self, message: Dict[str, Any]) -> None:
        sender = message["from"]
        image = message.get("image") or {}
        mime_type = image.get("mime_type")

        file_path = await self.download_media(image.get("id"), mime_type)
        await self.producer.enqueue(
            QueueMessage.for_whatsapp_image(
                sender, image.get("caption"), str(file_path), mime_type
            )
        )

    async def handle_document(self, message: Dict[str, Any]) -> None:
        sender = message["from"]
        document = message.get("document") or {}
        mime_type = document.get("mime_type")

        file_path = await self.download_media(document.get("id"), mime_type)
        await self.producer.enqueue(
            QueueMessage.for_whatsapp_document(
                sender,
                document.get("caption"),
                str(file_path),
                mime_type,
                document.get("filename"),
            )
        )

    async def download_media(self, media_id: Optional[str], mime_type: Optional[str]):
        """Fetch an attachment from WhatsApp and store it as <mediaId><ext>"""
        if not media_id or not mime_type:
            raise MediaFetchError("Media message is missing id or mime_type")

        content = await self.whatsapp.fetch_media(media_id)
        return await self.media_store.save_bytes(content, media_id, mime_type)

    async def test_connection(self, phone: Optional[str]) -> str:
        """Send a test message through the delivery sink"""
        if not phone:
            return "Webhook is ready. Add ?phone=<number> to send a test message."

        try:
            await self.whatsapp.send_text(
                phone, "Test message from the WhatsApp chat relay."
            )
            return f"Test message sent to {phone}"
        except Exception as e:
            logger.error(f"Failed to send test message to {phone}: {e}")
            return f"Failed to send test message: {e}"
