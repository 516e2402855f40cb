"""
Dialogue Engine - Turn Orchestrator

One inbound message in, one reply out:
guardrails -> interpreter -> state machine -> fallback tier.

Turns for the same contact are serialised; session state is read once
and written once per turn.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

from app.config import settings
from app.core.intelligence.intent.classifier import Interpreter, get_interpreter
from app.core.intelligence.intent.rules import RuleInterpreter
from app.core.intelligence.intent.types import Intent, InterpretationResult, InterpretationSource
from app.core.intelligence.session.models import (
    Flow,
    IdleSession,
    Session,
    SessionInvariantError,
    check_invariants,
)
from app.core.intelligence.session.store import ContactLocks, SessionStore, get_session_store
from app.models.messages import InboundMessage
from app.safety.guardrails import ExitReason, check_guardrails
from .flow import ConversationFlow
from .response import ResponseGenerator, get_response_generator

logger = logging.getLogger(__name__)


@dataclass
class EngineResponse:
    """Response from the dialogue engine."""

    reply: str
    contact_id: str
    flow: Optional[Flow] = None  # None when a guardrail ended the turn
    step: Optional[int] = None
    intent: Optional[Intent] = None
    reply_source: str = "flow"  # guardrail, flow, faq, llm, generator
    exit_reason: Optional[ExitReason] = None
    booking_event_id: Optional[str] = None
    processing_time_ms: Optional[float] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        result = {
            "reply": self.reply,
            "contact_id": self.contact_id,
            "reply_source": self.reply_source,
        }

        if self.flow is not None:
            result["flow"] = self.flow.value
            result["step"] = self.step
        if self.intent:
            result["intent"] = self.intent.value
        if self.exit_reason:
            result["exit_reason"] = self.exit_reason.value
        if self.booking_event_id:
            result["booking_event_id"] = self.booking_event_id
        if self.processing_time_ms is not None:
            result["processing_time_ms"] = self.processing_time_ms

        return result


class DialogueEngine:
    """
    Main orchestrator for the intake assistant.

    Coordinates:
    - Immediate-exit guardrails
    - Message interpretation
    - Session storage and per-contact locking
    - The conversation state machine
    - Fallback replies
    """

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        interpreter: Optional[Interpreter] = None,
        flow: Optional[ConversationFlow] = None,
        responses: Optional[ResponseGenerator] = None,
        locks: Optional[ContactLocks] = None,
        timeout: Optional[float] = None,
    ):
        """Initialize engine with optional dependencies.

        Args:
            store: Session store
            interpreter: Message interpreter
            flow: Conversation state machine
            responses: Reply templates and free-text generator
            locks: Per-contact lock registry
            timeout: Per-call bound for external collaborators, in seconds
        """
        self._store = store
        self._interpreter = interpreter
        self._flow = flow
        self._responses = responses
        self._locks = locks or ContactLocks()
        self._timeout = timeout if timeout is not None else settings.external_call_timeout_seconds

    def _get_store(self) -> SessionStore:
        """Get session store."""
        if self._store is None:
            self._store = get_session_store()
        return self._store

    def _get_interpreter(self) -> Interpreter:
        """Get interpreter."""
        if self._interpreter is None:
            self._interpreter = get_interpreter()
        return self._interpreter

    def _get_responses(self) -> ResponseGenerator:
        """Get response generator."""
        if self._responses is None:
            self._responses = get_response_generator()
        return self._responses

    def _get_flow(self) -> ConversationFlow:
        """Get flow manager."""
        if self._flow is None:
            self._flow = ConversationFlow(responses=self._get_responses(), timeout=self._timeout)
        return self._flow

    async def handle(self, message: InboundMessage) -> EngineResponse:
        """
        Process one inbound message.

        Args:
            message: Inbound message

        Returns:
            EngineResponse with the reply and resulting state
        """
        start_time = time.time()
        contact_id = message.contact_id
        text = message.text or ""

        # Guardrails end the turn without touching the session
        exit_result = check_guardrails(text)
        if exit_result is not None:
            return EngineResponse(
                reply=exit_result.reply,
                contact_id=contact_id,
                reply_source="guardrail",
                exit_reason=exit_result.reason,
                processing_time_ms=(time.time() - start_time) * 1000,
            )

        async with self._locks.holding(contact_id):
            store = self._get_store()
            session: Session = await store.get(contact_id) or IdleSession()

            interpretation = await self._interpret(text, message.contact_name, contact_id)
            logger.debug(
                f"Turn {contact_id}: flow={session.flow.value} step={session.step} "
                f"intent={interpretation.intent.value} ({interpretation.source.value})"
            )

            result = await self._get_flow().process(
                session,
                text,
                interpretation,
                contact_name=message.contact_name,
                contact_id=contact_id,
            )

            next_session = result.session
            try:
                check_invariants(next_session)
            except SessionInvariantError as e:
                logger.error(f"Illegal session for {contact_id}, resetting: {e}")
                next_session = IdleSession()

            await store.put(contact_id, next_session)

        reply = result.reply
        reply_source = "flow"
        if reply is None:
            reply, reply_source = await self._fallback(text, interpretation, message)

        processing_time = (time.time() - start_time) * 1000
        logger.info(
            f"Turn {contact_id}: {session.flow.value}/{session.step} -> "
            f"{next_session.flow.value}/{next_session.step} "
            f"intent={interpretation.intent.value} reply={reply_source} "
            f"({processing_time:.0f}ms)"
        )

        return EngineResponse(
            reply=reply,
            contact_id=contact_id,
            flow=next_session.flow,
            step=next_session.step,
            intent=interpretation.intent,
            reply_source=reply_source,
            booking_event_id=result.booking.event_id if result.booking else None,
            processing_time_ms=processing_time,
        )

    async def _interpret(
        self,
        text: str,
        contact_name: Optional[str],
        contact_id: str,
    ) -> InterpretationResult:
        """Interpret with a bounded wait; a timeout falls back to the rules."""
        try:
            return await asyncio.wait_for(
                self._get_interpreter().interpret(text, contact_name, contact_id),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Interpretation timed out for {contact_id}, using rules")
            return RuleInterpreter().interpret(text, contact_name)

    async def _fallback(
        self,
        text: str,
        interpretation: InterpretationResult,
        message: InboundMessage,
    ) -> tuple[str, str]:
        """Mini-FAQ, then the LLM's own reply, then the free-text generator."""
        responses = self._get_responses()

        faq_reply = responses.faq(text)
        if faq_reply:
            return faq_reply, "faq"

        if interpretation.source == InterpretationSource.LLM and interpretation.reply:
            return interpretation.reply, "llm"

        try:
            reply = await asyncio.wait_for(
                responses.free_text_reply(text, message.contact_id, message.contact_name),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Free-text reply timed out")
            reply = settings.fallback_reply
        return reply or settings.fallback_reply, "generator"

    async def get_session(self, contact_id: str) -> Optional[Session]:
        """Get the stored session for a contact, or None."""
        return await self._get_store().get(contact_id)

    async def reset_session(self, contact_id: str) -> bool:
        """Clear a contact's session.

        Returns:
            True if a session existed
        """
        async with self._locks.holding(contact_id):
            deleted = await self._get_store().delete(contact_id)
        if deleted:
            logger.info(f"Session reset: {contact_id}")
        return deleted


# Singleton
_engine: Optional[DialogueEngine] = None


def get_dialogue_engine() -> DialogueEngine:
    """Get singleton DialogueEngine."""
    global _engine
    if _engine is None:
        _engine = DialogueEngine()
    return _engine


async def process_message(message: InboundMessage) -> EngineResponse:
    """
    Convenience function to process a message.

    Args:
        message: Inbound message

    Returns:
        EngineResponse
    """
    return await get_dialogue_engine().handle(message)
