# aibot/services/producer.py

import logging

import aio_pika

from aibot.core.broker import CHAT_ROUTING_KEY, RabbitMQBroker
from aibot.data_schemas import QueueMessage

logger = logging.getLogger(__name__)


class ChatMessageProducer:
    """Publishes chat messages to the durable chat queue"""

    def __init__(self, broker: RabbitMQBroker):
        self.broker = broker

    async def enqueue(self, message: QueueMessage) -> None:
        """Publish a message; returns once the broker has confirmed it."""
        if self.broker.exchange is None:
            raise RuntimeError("Broker is not connected")

        logger.info(
            f"Enqueueing message: {message.message_id} "
            f"from {message.sender_phone} via {message.source.value}"
        )

        await self.broker.exchange.publish(
            aio_pika.Message(
                body=message.to_json(),
                content_type="application/json",
                delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
                message_id=message.message_id,
                timestamp=message.timestamp,
            ),
            routing_key=CHAT_ROUTING_KEY,
        )

        logger.debug(f"Message {message.message_id} enqueued successfully")
