"""
Reply texts for the intake assistant.

Canned Spanish templates for every state-machine reply, a keyword
mini-FAQ, and a Claude-backed free-text reply for everything else.
"""

import logging
import re
from typing import Optional

from app.config import settings
from app.infra.claude import ClaudeClient, ClaudeClientError, get_claude_client
from app.models.slots import Slot

logger = logging.getLogger(__name__)


FREE_TEXT_SYSTEM_PROMPT = (
    "Eres el asistente de WhatsApp de {clinic_name}. "
    "Responde breve, claro y profesional. Sin diagnósticos ni tratamientos personalizados por chat; invita a consulta. "
    "Políticas: urgencias -> aconseja acudir a urgencias / 911. No inventes precios fuera de los que se proporcionan. Mantén tono cálido. "
    "Datos fijos: Consulta ${consultation_price} MXN (≈{consultation_minutes} min). Dirección: {clinic_address}. Tel {clinic_phone}."
)

# Keyword mini-FAQ, checked in order
_FAQ_SLEEVE = re.compile(r"manga|sleeve")
_FAQ_BYPASS = re.compile(r"bypass")


def _money(amount: int) -> str:
    return f"${amount:,}"


class ResponseGenerator:
    """
    Template replies with an LLM free-text fallback.

    Every method returns a non-empty string; free_text_reply() never raises.
    """

    def __init__(self, claude_client: Optional[ClaudeClient] = None, use_llm: Optional[bool] = None):
        """Initialize generator.

        Args:
            claude_client: Claude client (uses singleton if not provided)
            use_llm: Force the LLM on/off (defaults to whether a client was given)
        """
        self._claude_client = claude_client
        self._use_llm = use_llm if use_llm is not None else claude_client is not None

    async def _get_client(self) -> Optional[ClaudeClient]:
        """Get Claude client, or None when the LLM is disabled."""
        if self._claude_client is None:
            self._claude_client = await get_claude_client()
        return self._claude_client

    # === Free text ===

    async def free_text_reply(
        self,
        text: str,
        contact_id: Optional[str] = None,
        contact_name: Optional[str] = None,
    ) -> str:
        """Generate a free-text reply, or the fixed fallback on any failure.

        Args:
            text: Patient's message
            contact_id: Contact identifier
            contact_name: Contact display name

        Returns:
            Reply text
        """
        if not self._use_llm:
            return settings.fallback_reply

        try:
            client = await self._get_client()
            if client is None:
                return settings.fallback_reply

            response = await client.generate(
                prompt=f"Nombre: {contact_name or 'desconocido'}; Tel: {contact_id or ''}; Mensaje: {text}",
                system_prompt=FREE_TEXT_SYSTEM_PROMPT.format(
                    clinic_name=settings.clinic_name,
                    consultation_price=settings.consultation_price,
                    consultation_minutes=settings.consultation_minutes,
                    clinic_address=settings.clinic_address,
                    clinic_phone=settings.clinic_phone,
                ),
                max_tokens=220,
                temperature=0.3,
            )
            return response.content.strip() or settings.fallback_reply

        except ClaudeClientError as e:
            logger.warning(f"LLM free-text reply failed: {e}")
            return settings.fallback_reply

    def faq(self, text: str) -> Optional[str]:
        """Keyword mini-FAQ; None when nothing matches."""
        lowered = (text or "").lower()
        if _FAQ_SLEEVE.search(lowered):
            return (
                "La **manga gástrica** reduce el tamaño del estómago; requiere evaluación integral. "
                f"¿Deseas agendar valoración ({self._consultation()})?"
            )
        if _FAQ_BYPASS.search(lowered):
            return (
                "El **bypass gástrico** favorece pérdida de peso y control metabólico. "
                "¿Agendamos valoración?"
            )
        return None

    # === Canned replies ===

    def _consultation(self) -> str:
        return f"${settings.consultation_price} MXN, {settings.consultation_minutes} min"

    def location(self) -> str:
        return f"Estamos en **{settings.clinic_name}**, {settings.clinic_address}."

    def prices(self) -> str:
        return (
            f"Consulta de valoración: **${settings.consultation_price} MXN** "
            f"(~{settings.consultation_minutes} min). Cirugía depende del procedimiento: "
            f"**manga desde {_money(settings.sleeve_price)}** y "
            f"**bypass desde {_money(settings.bypass_price)}**. Se confirma en consulta."
        )

    def not_offered(self) -> str:
        return (
            "No realizamos **CPRE, endoscopias** ni manejo de **diarrea crónica**. "
            "Podemos orientarte con un centro especializado."
        )

    def other_gi(self) -> str:
        return (
            "Atendemos vesícula, hernias (inguinal/umbilical/hiato), reflujo, acalasia, "
            f"gastritis y colitis. ¿Deseas agendar **valoración** ({self._consultation()})?"
        )

    def handoff(self) -> str:
        return "Con gusto te comunico con un asesor humano. ¿Prefieres mensaje por WhatsApp o llamada?"

    def cancelled(self) -> str:
        return "De acuerdo, dejamos el proceso aquí. ¿En qué más puedo ayudarte?"

    # === Triage ===

    def triage_prompt(self) -> str:
        return (
            "Perfecto. Para orientarte mejor, cuéntame en tus palabras: **edad**, **peso** y "
            "**estatura** (como gustes), y si tienes alguna **enfermedad** (diabetes, hipertensión, etc.)."
        )

    def missing_fields(self, missing: str) -> str:
        """Ask for the missing fields, already joined as a natural list."""
        return (
            f"Gracias. Me falta **{missing}**. Puedes decirlo como quieras "
            f'(ej. "tengo 38, peso 112 kg y mido 1.68").'
        )

    def reconfirm_measurements(self) -> str:
        return (
            "No pude calcular tu IMC. ¿Me confirmas peso en kg y estatura en cm o en metros? "
            "(Ej. 112 kg y 1.68 m)"
        )

    def surgical_candidate(self, bmi: float) -> str:
        return (
            f"Tu **IMC es {bmi}**. Con IMC ≥30, **sí podrías ser candidato** a cirugía bariátrica.\n"
            "Seguimos un **protocolo prequirúrgico** con valoración del equipo multidisciplinario "
            "para definir el mejor procedimiento.\n"
            f"¿Deseas **agendar una valoración** (${settings.consultation_price} MXN, "
            f"~{settings.consultation_minutes} min) para resolver dudas y planear tu tratamiento?"
        )

    def non_surgical(self, bmi: float) -> str:
        return (
            f"Tu **IMC es {bmi}**. Con IMC <30, opciones como **balón** o **medicamentos** ayudan "
            "cuando hay ~10–15 kg sobre el ideal, pero **no tienen la potencia** de la cirugía "
            "para normalizar peso.\n"
            "Si lo deseas, podemos ver manejo no quirúrgico o **agendar valoración** para revisar tu caso."
        )

    # === Booking ===

    def format_slots(self, slots: list[Slot], ask_name: bool = False) -> str:
        """List slots 1-indexed.

        Args:
            slots: Candidate slots in presentation order
            ask_name: Also ask for the patient's name

        Returns:
            Slot list text
        """
        lines = [f"{i}) {slot.label}" for i, slot in enumerate(slots, start=1)]
        text = "Horarios disponibles (responde con el número):\n" + "\n".join(lines)
        if ask_name:
            text += '\n\nIncluye también tu **nombre completo** (ej. "2 Ana López").'
        return text

    def no_slots(self) -> str:
        return (
            "No encuentro horarios libres en las próximas semanas. "
            "¿Propones fecha/hora y te confirmamos?"
        )

    def choose_slot_again(self) -> str:
        return "Responde con el **número** del horario elegido."

    def confirm_slot(self, slot: Slot) -> str:
        return f"¿Confirmas tu cita para **{slot.label}**? (sí/no)"

    def confirm_again(self, slot: Slot) -> str:
        return f"No entendí tu respuesta. ¿Confirmas tu cita para **{slot.label}**? Responde **sí** o **no**."

    def booked(self) -> str:
        return "¡Listo! Dejé tu cita en **tentativa**. Te confirmamos por este medio."

    def booking_failed(self) -> str:
        return "No pude registrar la cita ahora mismo. ¿Te contactamos para confirmarla?"

    def declined(self) -> str:
        return "Sin problema. ¿Quieres ver otros horarios o que te contactemos?"

    def event_summary(self, patient_name: str) -> str:
        return f"Valoración GBC - {patient_name}"

    def event_description(self, patient_name: str, contact_id: Optional[str] = None) -> str:
        description = f"Cita solicitada por WhatsApp. Paciente: {patient_name}."
        if contact_id:
            description += f" Tel: {contact_id}."
        return description


# Singleton
_generator: Optional[ResponseGenerator] = None


def get_response_generator() -> ResponseGenerator:
    """Get singleton ResponseGenerator."""
    global _generator
    if _generator is None:
        _generator = ResponseGenerator(use_llm=settings.llm_enabled)
    return _generator
