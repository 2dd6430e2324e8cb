# tests/conftest.py

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock
import sys
import os

# Add project root to path to ensure imports work
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from aibot import create_app
from aibot.core.config import Settings
from aibot.core.whatsapp_client import WhatsAppClient
from aibot.services.chat_service import ChatService
from aibot.services.langchain_service import LLMService
from aibot.services.producer import ChatMessageProducer
from aibot.services.state import SessionStore


@pytest.fixture
def test_settings(tmp_path):
    """Settings pointing uploads at a temporary directory"""
    settings = Settings()
    settings.UPLOAD_DIR = str(tmp_path / "uploads")
    settings.WHATSAPP_VERIFY_TOKEN = "test_verify_token"
    settings.WHATSAPP_ACCESS_TOKEN = "test_token"
    settings.WHATSAPP_PHONE_NUMBER_ID = "test_phone_id"
    settings.WORKER_ENABLED = False
    return settings


@pytest.fixture
def app(test_settings):
    """Create application for testing (lifespan is not entered, no broker needed)."""
    return create_app(test_settings)


@pytest.fixture
def client(app):
    """Create a test client for the app."""
    return TestClient(app)


@pytest.fixture
def session_store():
    return SessionStore(max_entries=20)


@pytest.fixture
def mock_llm_service():
    """Completion client double; replies 'Hi there!' unless reconfigured"""
    service = MagicMock(spec=LLMService)
    service.complete = AsyncMock(return_value="Hi there!")
    return service


@pytest.fixture
def chat_service(mock_llm_service, session_store):
    return ChatService(mock_llm_service, session_store)


@pytest.fixture
def mock_whatsapp():
    """Mock WhatsApp client for tests."""
    client = MagicMock(spec=WhatsAppClient)
    client.extract_message = WhatsAppClient.extract_message
    client.send_text = AsyncMock(return_value={"messages": [{"id": "wamid.test"}]})
    client.fetch_media = AsyncMock(return_value=b"media-bytes")
    return client


@pytest.fixture
def mock_producer():
    producer = MagicMock(spec=ChatMessageProducer)
    producer.enqueue = AsyncMock()
    return producer


def _webhook_envelope(message, sender_id="123456789", profile_name="Test User"):
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "123456789",
                "changes": [
                    {
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {
                                "display_phone_number": "15556078886",
                                "phone_number_id": "123456789",
                            },
                            "contacts": [
                                {"profile": {"name": profile_name}, "wa_id": sender_id}
                            ],
                            "messages": [message],
                        },
                        "field": "messages",
                    }
                ],
            }
        ],
    }


@pytest.fixture
def whatsapp_text_message_payload():
    """Generate a standard WhatsApp text message webhook payload."""

    def _create_payload(sender_id="123456789", text="test", message_id="test_message_id"):
        return _webhook_envelope(
            {
                "from": sender_id,
                "id": message_id,
                "type": "text",
                "text": {"body": text},
            },
            sender_id=sender_id,
        )

    return _create_payload


@pytest.fixture
def whatsapp_image_message_payload():
    """Generate a WhatsApp image webhook payload."""

    def _create_payload(
        sender_id="123456789", media_id="img_123", mime_type="image/jpeg", caption=None
    ):
        image = {"id": media_id, "mime_type": mime_type}
        if caption is not None:
            image["caption"] = caption
        return _webhook_envelope(
            {"from": sender_id, "id": "wamid.img", "type": "image", "image": image},
            sender_id=sender_id,
        )

    return _create_payload


@pytest.fixture
def whatsapp_document_message_payload():
    """Generate a WhatsApp document webhook payload."""

    def _create_payload(
        sender_id="123456789",
        media_id="doc_123",
        mime_type="application/pdf",
        filename="passport.pdf",
        caption=None,
    ):
        document = {"id": media_id, "mime_type": mime_type, "filename": filename}
        if caption is not None:
            document["caption"] = caption
        return _webhook_envelope(
            {
                "from": sender_id,
                "id": "wamid.doc",
                "type": "document",
                "document": document,
            },
            sender_id=sender_id,
        )

    return _create_payload
