"""Chat API endpoints for the assistant router.

Admission has already happened in ``RateLimitMiddleware`` by the time a
route runs; routes classify the message and dispatch the intent.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field, field_validator

from bankbot.app.core.config import Settings
from bankbot.app.core.logging import get_log_context, get_logger
from bankbot.app.middleware.rate_limit.models import RateCategory
from bankbot.app.middleware.request_id import get_request_id
from bankbot.app.services.intent.models import EntityValue
from bankbot.app.services.pipeline import RequestPipeline

router = APIRouter(prefix="/api/chatbot", tags=["chatbot"])
logger = get_logger(__name__)


def _not_blank(v: str) -> str:
    if not v.strip():
        raise ValueError("Message cannot be empty")
    return v


class ChatMessage(BaseModel):
    """Inbound text message."""
    message: str = Field(..., min_length=1)
    type: Literal["text", "voice"] = "text"
    session_id: Optional[str] = Field(default=None, max_length=128)
    user_id: Optional[str] = Field(default=None, max_length=128)

    @field_validator("message")
    @classmethod
    def validate_message(cls, v: str) -> str:
        return _not_blank(v)


class VoiceMessage(BaseModel):
    """Inbound voice turn, already transcribed by the client or a speech service."""
    transcript: str = Field(..., min_length=1)
    session_id: Optional[str] = Field(default=None, max_length=128)
    user_id: Optional[str] = Field(default=None, max_length=128)

    @field_validator("transcript")
    @classmethod
    def validate_transcript(cls, v: str) -> str:
        return _not_blank(v)


class ChatResponse(BaseModel):
    message: str
    intent: str
    confidence: float
    entities: Dict[str, EntityValue] = Field(default_factory=dict)
    suggestions: List[str] = Field(default_factory=list)
    session_id: Optional[str] = None
    timestamp: datetime


class IntentInfo(BaseModel):
    name: str
    confidence: float
    entities: Dict[str, EntityValue] = Field(default_factory=dict)


def get_pipeline(request: Request) -> RequestPipeline:
    """FastAPI dependency returning the pipeline owned by the app."""
    return request.app.state.pipeline


def get_settings(request: Request) -> Settings:
    """FastAPI dependency returning the settings the app was created with."""
    return request.app.state.settings


def _check_length(text: str, config: Settings) -> None:
    if len(text) > config.max_message_length:
        raise HTTPException(
            status_code=422,
            detail=f"Message must be at most {config.max_message_length} characters",
        )


def _client_identity(request: Request, user_id: Optional[str]) -> str:
    client_key = getattr(request.state, "client_key", None)
    if client_key:
        return client_key
    return f"user:{user_id}" if user_id else "anonymous"


def _answer(
    request: Request,
    pipeline: RequestPipeline,
    text: str,
    category: RateCategory,
    user_id: Optional[str],
    session_id: Optional[str],
) -> ChatResponse:
    _check_length(text, get_settings(request))
    client_identity = _client_identity(request, user_id)
    intent, reply = pipeline.respond(text, client_identity, category)
    logger.info(
        f"Handled {category.value} message as {intent.name}",
        extra=get_log_context(
            request_id=get_request_id(request),
            client_id=client_identity,
            category=category.value,
            intent=intent.name,
        ),
    )
    return ChatResponse(
        message=reply.message,
        intent=intent.name,
        confidence=intent.confidence,
        entities=intent.entities,
        suggestions=reply.suggestions,
        session_id=session_id,
        timestamp=datetime.now(timezone.utc),
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(
    body: ChatMessage,
    request: Request,
    pipeline: RequestPipeline = Depends(get_pipeline),
) -> ChatResponse:
    """Classify a text message and return the handler's reply."""
    return _answer(
        request, pipeline, body.message, RateCategory.CHAT, body.user_id, body.session_id
    )


@router.post("/voice", response_model=ChatResponse)
async def voice(
    body: VoiceMessage,
    request: Request,
    pipeline: RequestPipeline = Depends(get_pipeline),
) -> ChatResponse:
    """Classify a transcribed voice message."""
    return _answer(
        request, pipeline, body.transcript, RateCategory.VOICE, body.user_id, body.session_id
    )


@router.post("/transfer", response_model=ChatResponse)
async def transfer(
    body: ChatMessage,
    request: Request,
    pipeline: RequestPipeline = Depends(get_pipeline),
) -> ChatResponse:
    """Classify a message sent from the money transfer flow."""
    return _answer(
        request, pipeline, body.message, RateCategory.TRANSFER, body.user_id, body.session_id
    )


@router.get("/intents", response_model=List[IntentInfo])
async def supported_intents(
    pipeline: RequestPipeline = Depends(get_pipeline),
) -> List[Dict[str, Any]]:
    """List the intent catalog for client-side help and UI."""
    return [intent.to_dict() for intent in pipeline.supported_intents()]
