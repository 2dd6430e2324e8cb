# tests/test_worker.py

import pytest
from unittest.mock import AsyncMock, MagicMock

from aibot.core.exceptions import DeliveryError, ModelTimeout
from aibot.data_schemas import MessageType, QueueMessage, Source
from aibot.services.worker import APOLOGY_MESSAGE, ChatMessageWorker


@pytest.fixture
def worker(chat_service, mock_whatsapp):
    return ChatMessageWorker(chat_service, mock_whatsapp)


def make_delivery(body: bytes):
    delivery = MagicMock()
    delivery.body = body
    delivery.message_id = "delivery-1"
    delivery.redelivered = False
    delivery.ack = AsyncMock()
    delivery.nack = AsyncMock()
    delivery.reject = AsyncMock()
    return delivery


def test_dispatch_table_covers_every_pair(worker):
    for source in Source:
        for message_type in MessageType:
            assert (source, message_type) in worker.handlers


@pytest.mark.asyncio
async def test_text_round_trip(worker, mock_whatsapp, mock_llm_service, session_store):
    message = QueueMessage.for_whatsapp_text("15551234567", "Hello")

    await worker.process_message(message)

    mock_llm_service.complete.assert_awaited_once_with([], "Hello")
    mock_whatsapp.send_text.assert_awaited_once_with("15551234567", "Hi there!")
    history = session_store.history("15551234567")
    assert [(m.role, m.content) for m in history] == [
        ("user", "Hello"),
        ("assistant", "Hi there!"),
    ]


@pytest.mark.asyncio
async def test_second_turn_sees_history(worker, mock_llm_service):
    await worker.process_message(QueueMessage.for_whatsapp_text("1555", "Hello"))
    await worker.process_message(QueueMessage.for_whatsapp_text("1555", "Again"))

    prior_history, prompt = mock_llm_service.complete.await_args.args
    assert prompt == "Again"
    assert [m.content for m in prior_history] == ["Hello", "Hi there!"]


@pytest.mark.asyncio
async def test_blank_reply_not_delivered(worker, mock_whatsapp, mock_llm_service):
    mock_llm_service.complete.return_value = "   "

    await worker.process_message(QueueMessage.for_whatsapp_text("1555", "Hello"))
    mock_whatsapp.send_text.assert_not_called()


@pytest.mark.asyncio
async def test_model_timeout_apologizes_and_reraises(
    worker, mock_whatsapp, mock_llm_service, session_store
):
    mock_llm_service.complete.side_effect = ModelTimeout("slow")

    with pytest.raises(ModelTimeout):
        await worker.process_message(QueueMessage.for_whatsapp_text("1555", "Hello"))

    mock_whatsapp.send_text.assert_awaited_once_with("1555", APOLOGY_MESSAGE)
    # The user turn stays in history
    assert [m.role for m in session_store.history("1555")] == ["user"]


@pytest.mark.asyncio
async def test_apology_failure_is_swallowed(worker, mock_whatsapp, mock_llm_service):
    mock_llm_service.complete.side_effect = ModelTimeout("slow")
    mock_whatsapp.send_text.side_effect = DeliveryError("down", status_code=503)

    # The original error is re-raised, not the delivery error
    with pytest.raises(ModelTimeout):
        await worker.process_message(QueueMessage.for_whatsapp_text("1555", "Hello"))


@pytest.mark.asyncio
async def test_image_without_caption_only_records_upload(
    worker, mock_whatsapp, mock_llm_service, session_store
):
    message = QueueMessage.for_whatsapp_image("1555", None, "/data/uploads/abc.jpg", "image/jpeg")

    await worker.process_message(message)

    mock_llm_service.complete.assert_not_called()
    mock_whatsapp.send_text.assert_not_called()
    history = session_store.history("1555")
    assert len(history) == 1
    assert history[0].role == "user"
    assert history[0].content == "upload file to filepath: /data/uploads/abc.jpg"


@pytest.mark.asyncio
async def test_document_with_caption_is_answered(worker, mock_whatsapp, mock_llm_service):
    mock_llm_service.complete.return_value = "Passport for JOHN DOE"
    message = QueueMessage.for_whatsapp_document(
        "1555", "extract this", "/data/uploads/doc.pdf", "application/pdf", "doc.pdf"
    )

    await worker.process_message(message)

    prompt = mock_llm_service.complete.await_args.args[1]
    assert prompt.startswith("extract this")
    assert "FILE_PATH: /data/uploads/doc.pdf" in prompt
    assert "MIME_TYPE: application/pdf" in prompt
    mock_whatsapp.send_text.assert_awaited_once_with("1555", "Passport for JOHN DOE")


@pytest.mark.asyncio
async def test_web_message_is_not_delivered(worker, mock_whatsapp, mock_llm_service):
    message = QueueMessage(
        source=Source.WEB, message_type=MessageType.TEXT, session_id="web-1", text="Hello"
    )

    await worker.process_message(message)

    mock_llm_service.complete.assert_awaited_once()
    mock_whatsapp.send_text.assert_not_called()


@pytest.mark.asyncio
async def test_api_failure_has_no_apology(worker, mock_whatsapp, mock_llm_service):
    mock_llm_service.complete.side_effect = ModelTimeout("slow")
    message = QueueMessage(
        source=Source.API, message_type=MessageType.TEXT, session_id="api-1", text="Hello"
    )

    with pytest.raises(ModelTimeout):
        await worker.process_message(message)
    mock_whatsapp.send_text.assert_not_called()


@pytest.mark.asyncio
async def test_on_message_acks_success(worker):
    delivery = make_delivery(QueueMessage.for_whatsapp_text("1555", "Hello").to_json())

    await worker.on_message(delivery)

    delivery.ack.assert_awaited_once()
    delivery.nack.assert_not_called()


@pytest.mark.asyncio
async def test_on_message_requeues_failure(worker, mock_llm_service):
    mock_llm_service.complete.side_effect = ModelTimeout("slow")
    delivery = make_delivery(QueueMessage.for_whatsapp_text("1555", "Hello").to_json())

    await worker.on_message(delivery)

    delivery.nack.assert_awaited_once_with(requeue=True)
    delivery.ack.assert_not_called()


@pytest.mark.asyncio
async def test_on_message_rejects_malformed_body(worker, mock_llm_service):
    delivery = make_delivery(b'{"source": "WHATSAPP"}')

    await worker.on_message(delivery)

    delivery.reject.assert_awaited_once_with(requeue=False)
    mock_llm_service.complete.assert_not_called()


@pytest.mark.asyncio
async def test_start_requires_connected_broker(worker):
    with pytest.raises(RuntimeError):
        await worker.start()


@pytest.mark.asyncio
async def test_start_and_stop_consume(chat_service, mock_whatsapp):
    broker = MagicMock()
    broker.queue.consume = AsyncMock(return_value="ctag-1")
    broker.queue.cancel = AsyncMock()
    worker = ChatMessageWorker(chat_service, mock_whatsapp, broker)

    await worker.start()
    broker.queue.consume.assert_awaited_once_with(worker.on_message)

    await worker.stop()
    broker.queue.cancel.assert_awaited_once_with("ctag-1")
