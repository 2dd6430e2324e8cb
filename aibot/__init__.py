from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from aibot.core.broker import RabbitMQBroker
from aibot.core.config import Settings, get_settings
from aibot.core.media_store import MediaStore
from aibot.core.whatsapp_client import WhatsAppClient
from aibot.routes.chat import router as chat_router
from aibot.routes.webhook import router as webhook_router
from aibot.services.chat_service import ChatService
from aibot.services.langchain_service import LLMService
from aibot.services.producer import ChatMessageProducer
from aibot.services.state import SessionStore
from aibot.services.webhook_service import WebhookService
from aibot.services.worker import ChatMessageWorker

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = app.state.settings
    broker = app.state.broker
    worker = app.state.worker

    await broker.connect()
    if settings.WORKER_ENABLED:
        await worker.start()
    else:
        logger.info("Worker disabled, only producing to the chat queue")

    yield

    await worker.stop()
    await broker.close()


def create_app(settings: Settings = None):
    settings = settings or get_settings()

    # Initialize FastAPI app
    app = FastAPI(title="WhatsApp AI Chat Relay", lifespan=lifespan)

    # Build collaborators once and share them through app.state
    broker = RabbitMQBroker(
        settings.RABBITMQ_URL,
        max_delivery_attempts=settings.MAX_DELIVERY_ATTEMPTS,
        prefetch_count=settings.WORKER_PREFETCH,
    )
    whatsapp = WhatsAppClient(
        settings.WHATSAPP_ACCESS_TOKEN,
        settings.WHATSAPP_PHONE_NUMBER_ID,
        api_version=settings.WHATSAPP_API_VERSION,
        timeout=settings.HTTP_TIMEOUT,
    )
    media_store = MediaStore(settings.UPLOAD_DIR)
    session_store = SessionStore(settings.MAX_HISTORY)
    chat_service = ChatService(LLMService(settings), session_store)
    producer = ChatMessageProducer(broker)

    app.state.settings = settings
    app.state.broker = broker
    app.state.whatsapp = whatsapp
    app.state.media_store = media_store
    app.state.chat_service = chat_service
    app.state.producer = producer
    app.state.webhook_service = WebhookService(
        producer, whatsapp, media_store, settings.WHATSAPP_VERIFY_TOKEN
    )
    app.state.worker = ChatMessageWorker(chat_service, whatsapp, broker)

    # Register routes
    app.include_router(webhook_router)
    app.include_router(chat_router)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    @app.get("/")
    def read_root():
        return {"message": "Hello, WhatsApp AI Chat Relay"}

    return app
