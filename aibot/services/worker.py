# aibot/services/worker.py

from typing import Awaitable, Callable, Dict, Optional, Tuple
import logging

from aio_pika.abc import AbstractIncomingMessage
from pydantic import ValidationError

from aibot.core.broker import RabbitMQBroker
from aibot.core.whatsapp_client import WhatsAppClient
from aibot.data_schemas import MessageType, QueueMessage, Source
from aibot.services.chat_service import ChatService
from aibot.services.prompts import UPLOAD_NOTE_TEMPLATE
from aibot.services.state import Message

logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = (
    "Sorry, I encountered an error processing your message. Please try again."
)

Handler = Callable[[QueueMessage], Awaitable[None]]


class ChatMessageWorker:
    """
    Consumes chat messages from the queue, runs them through the chat service
    and delivers replies to the originating channel.

    Work is dispatched through an explicit (source, message type) table.
    Any handler failure triggers a best-effort apology to WhatsApp senders and
    is then handed back to the broker, which redelivers the message until the
    queue's delivery limit dead-letters it.
    """

    def __init__(
        self,
        chat_service: ChatService,
        whatsapp: WhatsAppClient,
        broker: Optional[RabbitMQBroker] = None,
    ):
        self.chat_service = chat_service
        self.whatsapp = whatsapp
        self.broker = broker
        self._consumer_tag: Optional[str] = None

        self.handlers: Dict[Tuple[Source, MessageType], Handler] = {
            (Source.WHATSAPP, MessageType.TEXT): self.handle_whatsapp_text,
            (Source.WHATSAPP, MessageType.IMAGE): self.handle_whatsapp_media,
            (Source.WHATSAPP, MessageType.DOCUMENT): self.handle_whatsapp_media,
        }
        for source in (Source.WEB, Source.API):
            for message_type in MessageType:
                self.handlers[(source, message_type)] = self.handle_without_delivery

    async def start(self) -> None:
        """Start consuming from the chat queue"""
        if self.broker is None or self.broker.queue is None:
            raise RuntimeError("Broker is not connected")
        self._consumer_tag = await self.broker.queue.consume(self.on_message)
        logger.info("Chat message worker started")

    async def stop(self) -> None:
        if self._consumer_tag and self.broker is not None and self.broker.queue is not None:
            await self.broker.queue.cancel(self._consumer_tag)
            logger.info("Chat message worker stopped")
        self._consumer_tag = None

    async def on_message(self, delivery: AbstractIncomingMessage) -> None:
        """Broker callback: ack on success, requeue on failure, dead-letter garbage."""
        try:
            message = QueueMessage.from_json(delivery.body)
        except ValidationError as e:
            logger.error(f"Rejecting malformed queue message {delivery.message_id}: {e}")
            await delivery.reject(requeue=False)
            return

        try:
            await self.process_message(message)
        except Exception:
            logger.warning(
                f"Returning message {message.message_id} to the broker for redelivery "
                f"(redelivered={delivery.redelivered})"
            )
            await delivery.nack(requeue=True)
            return

        await delivery.ack()

    async def process_message(self, message: QueueMessage) -> None:
        logger.info(
            f"Processing message: {message.message_id} "
            f"from {message.sender_phone} via {message.source.value}"
        )

        handler = self.handlers.get((message.source, message.message_type))
        if handler is None:
            logger.warning(
                f"No handler for {message.source.value}/{message.message_type.value}"
            )
            return

        try:
            await handler(message)
        except Exception as e:
            logger.error(
                f"Error processing message {message.message_id}: {e}", exc_info=True
            )
            await self.send_apology(message)
            raise

    async def handle_whatsapp_text(self, message: QueueMessage) -> None:
        response = await self.chat_service.chat(message.session_id, message.text)
        await self.deliver(message, response)

    async def handle_whatsapp_media(self, message: QueueMessage) -> None:
        if not message.has_caption:
            # File without caption: remember it for the next turn, nothing to answer
            self.chat_service.add_to_history(
                message.session_id,
                Message(
                    role="user",
                    content=UPLOAD_NOTE_TEMPLATE.format(file_path=message.media_file_path),
                ),
            )
            logger.info(
                f"Added {message.message_type.value.lower()} to history "
                f"for session: {message.session_id}"
            )
            return

        response = await self.chat_service.chat(
            message.session_id,
            message.text,
            message.mime_type,
            message.media_file_path,
        )
        await self.deliver(message, response)

    async def handle_without_delivery(self, message: QueueMessage) -> None:
        # Web/API callers receive replies through their own channel
        await self.chat_service.chat(
            message.session_id,
            message.text or "",
            message.mime_type,
            message.media_file_path,
        )

    async def deliver(self, message: QueueMessage, response: Optional[str]) -> None:
        if not response or not response.strip():
            logger.info(f"Empty response for message {message.message_id}, nothing sent")
            return

        await self.whatsapp.send_text(message.sender_phone, response)
        logger.info(f"Response sent to WhatsApp user: {message.sender_phone}")

    async def send_apology(self, message: QueueMessage) -> None:
        if not message.sender_phone:
            return
        try:
            await self.whatsapp.send_text(message.sender_phone, APOLOGY_MESSAGE)
        except Exception as send_error:
            logger.error(f"Failed to send error message to user: {send_error}")
