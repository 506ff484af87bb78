"""Rotas HTTP de conversa (entrada do usuário)."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import Field

from karen_ai.api.dependencies import get_message_handler, get_settings
from karen_ai.application.message_handler import MessageHandler
from karen_ai.config.settings import Settings
from karen_ai.domain.models import CamelModel, IncomingMessage
from karen_ai.observability.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

ANONYMOUS_USER = "anonymous-user"


class MessageRequest(CamelModel):
    """Corpo de POST /message (`text` validado na rota → 400)."""

    text: str | None = None
    system_prompt: str | None = Field(default=None)


@router.get("/health")
def health(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    """Healthcheck simples."""
    return {"status": "ok", "service": settings.service_name, "version": settings.version}


@router.post("/message")
async def post_message(
    body: MessageRequest,
    user_id: str = Header(default=ANONYMOUS_USER, alias="user-id"),
    handler: MessageHandler = Depends(get_message_handler),
) -> dict[str, Any]:
    """Processa uma mensagem do usuário (erros viram resposta `error: true`)."""
    if not body.text or not body.text.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Message text is required",
        )

    message = IncomingMessage(text=body.text, system_prompt=body.system_prompt)
    response = await handler.process_message(message, user_id)
    return response.to_payload()


@router.get("/history")
async def get_history(
    user_id: str = Header(default=ANONYMOUS_USER, alias="user-id"),
    handler: MessageHandler = Depends(get_message_handler),
) -> dict[str, Any]:
    history = await handler.get_conversation_history(user_id)
    return {"history": [m.to_wire() for m in history]}


@router.post("/end")
async def end_conversation(
    user_id: str = Header(default=ANONYMOUS_USER, alias="user-id"),
    handler: MessageHandler = Depends(get_message_handler),
) -> dict[str, Any]:
    response = await handler.end_conversation(user_id)
    return response.to_payload()


@router.get("/session")
def get_session(
    user_id: str = Header(default=ANONYMOUS_USER, alias="user-id"),
    handler: MessageHandler = Depends(get_message_handler),
) -> dict[str, Any]:
    session = handler.describe_session(user_id)
    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No active session found",
        )
    return {"session": session}
