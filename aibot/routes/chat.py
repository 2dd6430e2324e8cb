# aibot/routes/chat.py

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, Response, UploadFile
from typing import Dict, List, Optional
import logging

from aibot.core.media_store import MediaStore
from aibot.data_schemas import ChatResponse
from aibot.services.chat_service import ChatService

router = APIRouter(prefix="/api/chat")
logger = logging.getLogger(__name__)

ERROR_REPLY = "I apologize, but I encountered an error processing your request"


def get_chat_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def get_media_store(request: Request) -> MediaStore:
    return request.app.state.media_store


@router.post("", response_model=ChatResponse, response_model_by_alias=True)
async def chat(
    message: str = Form(""),
    sessionId: str = Form("default"),
    files: Optional[List[UploadFile]] = File(None),
    chat_service: ChatService = Depends(get_chat_service),
    media_store: MediaStore = Depends(get_media_store),
):
    if not message or not message.strip():
        raise HTTPException(status_code=400, detail="Message is required")

    session_id = sessionId.strip() or "default"
    logger.info(f"Web chat message for session {session_id}: {message[:50]}")

    file_path = None
    mime_type = None
    try:
        if files:
            upload = files[0]
            stored = await media_store.save_upload(upload)
            file_path = str(stored)
            mime_type = upload.content_type or "application/octet-stream"

        reply = await chat_service.chat(session_id, message, mime_type, file_path)
    except Exception as e:
        logger.error(
            f"Error processing chat for session {session_id}: {e}", exc_info=True
        )
        reply = ERROR_REPLY

    return ChatResponse(message=reply, session_id=session_id)


@router.delete("/history/{sessionId}")
async def clear_history(
    sessionId: str, chat_service: ChatService = Depends(get_chat_service)
):
    chat_service.clear_history(sessionId)
    return Response(status_code=200)


@router.get("/history/{sessionId}")
async def get_history(
    sessionId: str, chat_service: ChatService = Depends(get_chat_service)
) -> List[Dict[str, str]]:
    return [turn.model_dump() for turn in chat_service.get_history(sessionId)]
