# tests/test_broker.py

import aio_pika
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from aibot.core.broker import (
    CHAT_EXCHANGE,
    CHAT_QUEUE,
    CHAT_ROUTING_KEY,
    DLQ_EXCHANGE,
    DLQ_QUEUE,
    DLQ_ROUTING_KEY,
    RabbitMQBroker,
)


def _mock_channel():
    channel = MagicMock()
    channel.is_closed = False
    channel.set_qos = AsyncMock()
    channel.declare_exchange = AsyncMock(side_effect=lambda name, *a, **kw: MagicMock(name=name))

    def declare_queue(name, **kwargs):
        queue = MagicMock()
        queue.name = name
        queue.bind = AsyncMock()
        return queue

    channel.declare_queue = AsyncMock(side_effect=declare_queue)
    return channel


def test_queue_arguments():
    broker = RabbitMQBroker("amqp://localhost", max_delivery_attempts=5)
    assert broker.queue_arguments() == {
        "x-queue-type": "quorum",
        "x-delivery-limit": 5,
        "x-dead-letter-exchange": DLQ_EXCHANGE,
        "x-dead-letter-routing-key": DLQ_ROUTING_KEY,
    }


@pytest.mark.asyncio
async def test_declare_topology():
    broker = RabbitMQBroker("amqp://localhost")
    channel = _mock_channel()

    await broker.declare_topology(channel)

    exchange_names = [c.args[0] for c in channel.declare_exchange.await_args_list]
    assert exchange_names == [DLQ_EXCHANGE, CHAT_EXCHANGE]
    for call in channel.declare_exchange.await_args_list:
        assert call.args[1] == aio_pika.ExchangeType.DIRECT
        assert call.kwargs["durable"] is True

    queue_calls = {c.args[0]: c.kwargs for c in channel.declare_queue.await_args_list}
    assert queue_calls[DLQ_QUEUE]["durable"] is True
    assert queue_calls[CHAT_QUEUE]["arguments"]["x-delivery-limit"] == 3

    broker.queue.bind.assert_awaited_once_with(broker.exchange, routing_key=CHAT_ROUTING_KEY)
    broker.dead_letter_queue.bind.assert_awaited_once()
    assert broker.dead_letter_queue.bind.await_args.kwargs["routing_key"] == DLQ_ROUTING_KEY


@pytest.mark.asyncio
async def test_connect_enables_confirms_and_prefetch():
    channel = _mock_channel()
    connection = MagicMock()
    connection.is_closed = False
    connection.channel = AsyncMock(return_value=channel)
    connection.close = AsyncMock()

    broker = RabbitMQBroker("amqp://localhost", prefetch_count=7)
    with patch("aio_pika.connect_robust", new_callable=AsyncMock) as mock_connect:
        mock_connect.return_value = connection
        await broker.connect()

    mock_connect.assert_awaited_once_with("amqp://localhost")
    connection.channel.assert_awaited_once_with(publisher_confirms=True)
    channel.set_qos.assert_awaited_once_with(prefetch_count=7)
    assert broker.is_connected

    await broker.close()
    connection.close.assert_awaited_once()
    assert broker.exchange is None
    assert not broker.is_connected
