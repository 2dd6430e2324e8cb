# aibot/core/broker.py

"""RabbitMQ connection and queue topology for chat messages.

Topology:
- direct exchange ``chat-exchange`` -> quorum queue ``chat-message-queue``
  (routing key ``chat.message``)
- direct exchange ``chat-dlx-exchange`` -> queue ``chat-message-dlq``
  (routing key ``chat.dlq``)

The main queue dead-letters into the DLX once a message has been delivered
``x-delivery-limit`` times, so redelivery is handled entirely by the broker.
"""

from typing import Any, Dict, Optional
import logging

import aio_pika
from aio_pika.abc import (
    AbstractChannel,
    AbstractExchange,
    AbstractQueue,
    AbstractRobustConnection,
)

CHAT_QUEUE = "chat-message-queue"
CHAT_EXCHANGE = "chat-exchange"
CHAT_ROUTING_KEY = "chat.message"

# Dead letter queue for failed messages
DLQ_QUEUE = "chat-message-dlq"
DLQ_EXCHANGE = "chat-dlx-exchange"
DLQ_ROUTING_KEY = "chat.dlq"

logger = logging.getLogger(__name__)


class RabbitMQBroker:
    """Owns the AMQP connection, the channel and the declared exchanges/queues"""

    def __init__(self, url: str, max_delivery_attempts: int = 3, prefetch_count: int = 4):
        self.url = url
        self.max_delivery_attempts = max_delivery_attempts
        self.prefetch_count = prefetch_count

        self.connection: Optional[AbstractRobustConnection] = None
        self.channel: Optional[AbstractChannel] = None
        self.exchange: Optional[AbstractExchange] = None
        self.queue: Optional[AbstractQueue] = None
        self.dead_letter_queue: Optional[AbstractQueue] = None

    @property
    def is_connected(self) -> bool:
        return self.channel is not None and not self.channel.is_closed

    def queue_arguments(self) -> Dict[str, Any]:
        """Arguments for the main chat queue"""
        return {
            "x-queue-type": "quorum",
            "x-delivery-limit": self.max_delivery_attempts,
            "x-dead-letter-exchange": DLQ_EXCHANGE,
            "x-dead-letter-routing-key": DLQ_ROUTING_KEY,
        }

    async def connect(self) -> None:
        """Open a robust connection, a confirming channel and declare the topology"""
        if self.connection is None or self.connection.is_closed:
            logger.info("Connecting to RabbitMQ...")
            self.connection = await aio_pika.connect_robust(self.url)

        self.channel = await self.connection.channel(publisher_confirms=True)
        await self.channel.set_qos(prefetch_count=self.prefetch_count)
        await self.declare_topology(self.channel)
        logger.info(
            f"RabbitMQ ready: {CHAT_EXCHANGE} -> {CHAT_QUEUE} "
            f"(delivery limit {self.max_delivery_attempts}, DLQ {DLQ_QUEUE})"
        )

    async def declare_topology(self, channel: AbstractChannel) -> None:
        """Declare the chat and dead-letter exchanges, queues and bindings"""
        dead_letter_exchange = await channel.declare_exchange(
            DLQ_EXCHANGE, aio_pika.ExchangeType.DIRECT, durable=True
        )
        self.dead_letter_queue = await channel.declare_queue(DLQ_QUEUE, durable=True)
        await self.dead_letter_queue.bind(dead_letter_exchange, routing_key=DLQ_ROUTING_KEY)

        self.exchange = await channel.declare_exchange(
            CHAT_EXCHANGE, aio_pika.ExchangeType.DIRECT, durable=True
        )
        self.queue = await channel.declare_queue(
            CHAT_QUEUE, durable=True, arguments=self.queue_arguments()
        )
        await self.queue.bind(self.exchange, routing_key=CHAT_ROUTING_KEY)

    async def close(self) -> None:
        if self.connection is not None and not self.connection.is_closed:
            await self.connection.close()
            logger.info("RabbitMQ connection closed")
        self.connection = None
        self.channel = None
        self.exchange = None
        self.queue = None
        self.dead_letter_queue = None
