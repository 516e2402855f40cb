"""
Chat API Endpoint.

Runs conversation turns directly, without the WhatsApp transport, and
exposes per-contact session state for support staff.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.api.middleware.auth import require_admin_key
from app.core.intelligence.session.models import session_to_dict
from app.core.scheduling.engine import EngineResponse, get_dialogue_engine
from app.models.messages import InboundMessage

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/chat",
    tags=["Chat"],
    dependencies=[Depends(require_admin_key)],
)


class ChatRequest(BaseModel):
    """Chat message request."""

    contact_id: str = Field(
        ...,
        min_length=1,
        max_length=64,
        description="Contact identifier (WhatsApp ID / phone number)",
        examples=["5217711234567"],
    )
    contact_name: Optional[str] = Field(
        default=None,
        max_length=120,
        description="Contact display name",
        examples=["Ana López"],
    )
    text: str = Field(
        ...,
        min_length=1,
        max_length=4096,
        description="Patient's message",
        examples=["quiero agendar"],
    )


class ChatResponse(BaseModel):
    """Chat response."""

    reply: str = Field(
        ...,
        description="Assistant's reply",
    )
    contact_id: str
    flow: Optional[str] = Field(
        default=None,
        description="Active flow after the turn (none, triage, booking); absent when a guardrail answered",
    )
    step: Optional[int] = Field(
        default=None,
        description="Step within the active flow",
    )
    intent: Optional[str] = Field(
        default=None,
        description="Interpreted intent",
    )
    reply_source: str = Field(
        ...,
        description="What produced the reply: guardrail, flow, faq, llm or generator",
    )
    exit_reason: Optional[str] = None
    booking_event_id: Optional[str] = None
    processing_time_ms: Optional[float] = None


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: Optional[str] = None


@router.post(
    "",
    response_model=ChatResponse,
    status_code=status.HTTP_200_OK,
    summary="Send a chat message",
    description="Run one conversation turn for a contact and return the reply.",
    responses={
        200: {"description": "Successful response"},
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        500: {"model": ErrorResponse, "description": "Internal server error"},
    },
)
async def chat(request: ChatRequest) -> ChatResponse:
    """Process a chat message."""
    try:
        response: EngineResponse = await get_dialogue_engine().handle(
            InboundMessage(
                contact_id=request.contact_id,
                text=request.text,
                contact_name=request.contact_name,
            )
        )
    except Exception as e:
        logger.exception(f"Error processing chat message: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process message",
        )

    return ChatResponse(**response.to_dict())


@router.get(
    "/session/{contact_id}",
    response_model=dict,
    summary="Get session data",
    description="Retrieve the current conversation state of a contact.",
    responses={
        200: {"description": "Session data"},
        404: {"model": ErrorResponse, "description": "Session not found"},
    },
)
async def get_session(contact_id: str) -> dict:
    """Get session information."""
    session = await get_dialogue_engine().get_session(contact_id)

    if session is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )

    return {"contact_id": contact_id, **session_to_dict(session)}


@router.delete(
    "/session/{contact_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Reset a session",
    description="Clear a contact's conversation state.",
)
async def reset_session(contact_id: str) -> None:
    """Reset session to idle."""
    deleted = await get_dialogue_engine().reset_session(contact_id)

    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Session not found",
        )
