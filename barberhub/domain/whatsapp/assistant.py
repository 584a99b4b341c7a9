"""
WhatsApp virtual receptionist
Chat-completions with tool calls for availability lookup, booking and human hand-off
"""

import json
import logging
from datetime import date, datetime
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...config import ASSISTANT_MAX_TOOL_ROUNDS
from ...models import Barbershop, Profile, Service
from ...services.openai_service import OpenAIService
from ...shared.enums import AppointmentSource, MessageDirection, ProfileRole
from ..catalog.service import CatalogService
from ..scheduling.schemas import AppointmentCreate
from ..scheduling.service import AppointmentService
from .repository import WhatsAppRepository

logger = logging.getLogger(__name__)

HANDOFF_MESSAGE = (
    "Entendi que você precisa de um atendimento mais personalizado. "
    "Vou transferir você para um de nossos atendentes, que responderá em breve."
)
FALLBACK_MESSAGE = "Desculpe, não consegui concluir seu pedido agora. Pode repetir, por favor?"

TOOLS = [
    {
        "type": "function",
        "function": {
            "name": "check_availability",
            "description": "List free start times for a service on a date, optionally for one barber",
            "parameters": {
                "type": "object",
                "properties": {
                    "service": {"type": "string", "description": "Service name"},
                    "barber": {"type": "string", "description": "Barber name (optional)"},
                    "date": {"type": "string", "description": "Date as YYYY-MM-DD"},
                },
                "required": ["service", "date"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "create_booking",
            "description": "Book an appointment once service, barber, date, time and client name are known",
            "parameters": {
                "type": "object",
                "properties": {
                    "service": {"type": "string"},
                    "barber": {"type": "string"},
                    "date": {"type": "string", "description": "YYYY-MM-DD"},
                    "time": {"type": "string", "description": "HH:MM"},
                    "client_name": {"type": "string"},
                },
                "required": ["service", "barber", "date", "time", "client_name"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "transfer_to_human",
            "description": "Hand the conversation to a human attendant",
            "parameters": {
                "type": "object",
                "properties": {"reason": {"type": "string"}},
                "required": ["reason"],
            },
        },
    },
]

# Tool argument -> collected_data key
COLLECTED_FIELDS = {
    "service": "service",
    "barber": "barber",
    "date": "date",
    "time": "time",
    "client_name": "name",
}


def _match_by_name(items, name: Optional[str], attr: str):
    """Exact case-insensitive match first, then substring"""
    if not name:
        return None
    needle = name.strip().lower()
    for item in items:
        if getattr(item, attr).lower() == needle:
            return item
    for item in items:
        if needle in getattr(item, attr).lower():
            return item
    return None


def build_system_prompt(
    barbershop: Barbershop, services: list[Service], barbers: list[Profile], context
) -> str:
    service_lines = "\n".join(
        f"- {s.name}: {s.duration_minutes}min, R$ {s.price}" for s in services
    ) or "Nenhum serviço cadastrado"
    barber_lines = "\n".join(f"- {b.full_name}" for b in barbers) or "Nenhum barbeiro cadastrado"

    return f"""Você é a recepcionista virtual da {barbershop.name}.

INSTRUÇÕES IMPORTANTES:
- Use linguagem educada e objetiva, sem emojis ou diminutivos
- Mantenha respostas curtas e diretas
- Consulte horários com check_availability antes de sugerir um horário
- Só use create_booking quando serviço, barbeiro, data, horário e nome estiverem confirmados
- Se não souber responder, use transfer_to_human
- Hoje é {date.today().isoformat()}

DADOS DA BARBEARIA:
- Nome: {barbershop.name}
- Endereço: {barbershop.address or 'Não informado'}
- Horários: {json.dumps(barbershop.opening_hours or {}, ensure_ascii=False)}

SERVIÇOS DISPONÍVEIS:
{service_lines}

BARBEIROS DISPONÍVEIS:
{barber_lines}

CONTEXTO ATUAL:
- Etapa: {context.step}
- Intenção detectada: {context.intent or 'Não detectada'}
- Dados coletados: {json.dumps(context.collected_data or {}, ensure_ascii=False)}"""


class WhatsAppAssistant:
    """Runs one inbound message through the model and its booking tools"""

    def __init__(
        self,
        db: Session,
        openai: Optional[OpenAIService] = None,
        max_rounds: int = ASSISTANT_MAX_TOOL_ROUNDS,
    ):
        self.db = db
        self.repo = WhatsAppRepository()
        self.openai = openai or OpenAIService()
        self.max_rounds = max_rounds
        self.appointments = AppointmentService(db)
        self.catalog = CatalogService(db)

    async def handle_message(self, barbershop_id: int, phone: str, message: str) -> dict[str, Any]:
        barbershop = self.catalog.get_barbershop(barbershop_id)
        logger.info(f"📥 WhatsApp message for barbershop {barbershop_id} from {phone}: {message[:100]}")

        conversation = self.repo.get_or_create_conversation(self.db, barbershop_id, phone)
        self.repo.add_message(self.db, conversation, MessageDirection.INCOMING, message)

        if conversation.human_takeover or not conversation.ai_enabled:
            logger.info(f"👤 Conversation {conversation.id} handled by a human, skipping AI")
            return {
                "success": True,
                "ai_response": None,
                "conversation_id": conversation.id,
                "human_takeover": True,
            }

        context = self.repo.get_or_create_context(self.db, conversation)
        services = self.catalog.list_services(barbershop_id)
        barbers = self.appointments.repo.list_barbers(self.db, barbershop_id)

        state = {
            "intent": context.intent,
            "step": context.step,
            "collected": dict(context.collected_data or {}),
            "handoff": False,
            "appointment_id": None,
        }

        messages: list[dict[str, Any]] = [
            {"role": "system", "content": build_system_prompt(barbershop, services, barbers, context)},
            {"role": "user", "content": message},
        ]

        ai_response = None
        for round_number in range(self.max_rounds):
            reply = await self.openai.chat(messages, TOOLS)
            tool_calls = reply.get("tool_calls") or []
            if not tool_calls:
                ai_response = reply.get("content")
                break

            messages.append(
                {"role": "assistant", "content": reply.get("content"), "tool_calls": tool_calls}
            )
            for call in tool_calls:
                function = call.get("function") or {}
                result = self._run_tool(
                    barbershop_id, phone, services, barbers, function.get("name"), function.get("arguments"), state
                )
                messages.append(
                    {
                        "role": "tool",
                        "tool_call_id": call.get("id"),
                        "content": json.dumps(result, default=str, ensure_ascii=False),
                    }
                )
            logger.info(f"🔧 Assistant round {round_number + 1} ran {len(tool_calls)} tool call(s)")

            if state["handoff"]:
                ai_response = HANDOFF_MESSAGE
                break
        else:
            # Rounds exhausted: ask for a final answer without tools
            reply = await self.openai.chat(messages)
            ai_response = reply.get("content")

        ai_response = ai_response or FALLBACK_MESSAGE

        if state["step"] == "greeting" and not state["handoff"]:
            state["step"] = "conversation"
        context.intent = state["intent"]
        context.step = state["step"]
        context.collected_data = state["collected"]
        context.context_data = {
            **(context.context_data or {}),
            "last_intent": state["intent"],
            "needs_human": state["handoff"],
        }
        if state["handoff"]:
            conversation.human_takeover = True
        if state["collected"].get("name"):
            conversation.client_name = state["collected"]["name"]
        self.db.commit()

        self.repo.add_message(self.db, conversation, MessageDirection.OUTGOING, ai_response, from_ai=True)

        return {
            "success": True,
            "ai_response": ai_response,
            "conversation_id": conversation.id,
            "intent": state["intent"],
            "collected_data": state["collected"],
            "human_takeover": conversation.human_takeover,
            "appointment_id": state["appointment_id"],
        }

    # ------------------------------------------------------------------
    # Tools
    # ------------------------------------------------------------------

    def _run_tool(self, barbershop_id, phone, services, barbers, name, raw_arguments, state) -> dict:
        try:
            args = json.loads(raw_arguments or "{}")
        except json.JSONDecodeError:
            logger.warning(f"⚠️ Unparseable arguments for tool {name}: {raw_arguments}")
            return {"error": "invalid arguments"}

        for key, collected_key in COLLECTED_FIELDS.items():
            if args.get(key):
                state["collected"][collected_key] = args[key]

        if name == "check_availability":
            state["intent"] = "booking"
            state["step"] = "choosing_time"
            return self._check_availability(barbershop_id, services, barbers, args)
        if name == "create_booking":
            state["intent"] = "booking"
            result = self._create_booking(barbershop_id, phone, services, barbers, args)
            if result.get("success"):
                state["step"] = "booked"
                state["appointment_id"] = result["appointment_id"]
            return result
        if name == "transfer_to_human":
            state["intent"] = "transfer_human"
            state["step"] = "human"
            state["handoff"] = True
            logger.info(f"👤 Hand-off requested: {args.get('reason')}")
            return {"success": True}

        logger.warning(f"⚠️ Unknown tool requested: {name}")
        return {"error": f"unknown tool {name}"}

    def _check_availability(self, barbershop_id, services, barbers, args) -> dict:
        service = _match_by_name(services, args.get("service"), "name")
        if not service:
            return {"error": "service not found", "services": [s.name for s in services]}
        try:
            day = date.fromisoformat(args.get("date") or "")
        except ValueError:
            return {"error": "date must be YYYY-MM-DD"}

        if args.get("barber"):
            barber = _match_by_name(barbers, args["barber"], "full_name")
            if not barber:
                return {"error": "barber not found", "barbers": [b.full_name for b in barbers]}
            candidates = [barber]
        else:
            candidates = [b for b in barbers if b.role == ProfileRole.BARBER] or barbers

        available = {}
        for barber in candidates:
            _, times = self.appointments.available_times(
                barbershop_id, barber.id, day, service_id=service.id, now=datetime.now()
            )
            available[barber.full_name] = times
        return {"service": service.name, "date": day.isoformat(), "available": available}

    def _create_booking(self, barbershop_id, phone, services, barbers, args) -> dict:
        service = _match_by_name(services, args.get("service"), "name")
        barber = _match_by_name(barbers, args.get("barber"), "full_name")
        if not service or not barber:
            return {"success": False, "error": "service or barber not found"}
        try:
            day = date.fromisoformat(args.get("date") or "")
        except ValueError:
            return {"success": False, "error": "date must be YYYY-MM-DD"}

        client = self.catalog.find_or_create_client(barbershop_id, phone, args.get("client_name"))
        try:
            appointment = self.appointments.create_appointment(
                barbershop_id,
                AppointmentCreate(
                    client_id=client.id,
                    barber_id=barber.id,
                    service_id=service.id,
                    appointment_date=day,
                    start_time=args.get("time") or "",
                    source=AppointmentSource.WHATSAPP,
                ),
            )
        except HTTPException as e:
            logger.info(f"📅 Booking via WhatsApp rejected: {e.detail}")
            return {"success": False, "error": e.detail}
        except ValueError as e:
            return {"success": False, "error": str(e)}

        return {
            "success": True,
            "appointment_id": appointment.id,
            "service": service.name,
            "barber": barber.full_name,
            "date": appointment.appointment_date.isoformat(),
            "time": appointment.start_time.strftime("%H:%M"),
        }
