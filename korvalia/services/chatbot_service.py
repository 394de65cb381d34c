"""Chatbot service: deterministic keyword-intent assistant for the website widget.

Every turn is evaluated against an ordered list of rules; the first rule whose
predicate matches produces the reply. Order is load-bearing:

1. Exact suggestion-chip phrases (lower-cased message compared for equality)
2. Keyword classes: greeting, goodbye, thanks, schedule, contact/visit,
   services, featured, property search, price, location
3. Contact capture (email / phone / name) → conversation marked LEAD_CAPTURED
4. Short yes / no
5. Fallback

Both turns of every exchange are written to the ConversationStore. Upstream
failures while searching never break a reply: the chatbot answers as if
nothing matched.
"""
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence

from korvalia.config import settings
from korvalia.core.exceptions import EmblematicError
from korvalia.core.logging import get_logger, set_correlation_id
from korvalia.schemas.chat_schema import (
    ChatResponse,
    ChatStatus,
    Conversation,
    MessageRole,
    PropertyCard,
)
from korvalia.schemas.property_schema import Number, NormalizedProperty, Operation
from korvalia.services import chat_rules
from korvalia.services.chat_rules import PropertySearchParams
from korvalia.services.conversation_store import ConversationStore
from korvalia.services.emblematic_client import EmblematicClient
from korvalia.services.property_service import get_featured_properties, search_properties

logger = get_logger(__name__)


DEFAULT_RESULT_LIMIT = 4
WIDE_RESULT_LIMIT = 6

GREETING_MAX_LENGTH = 30
THANKS_MAX_LENGTH = 50
YES_MAX_LENGTH = 20
NO_MAX_LENGTH = 25

SERVICE_AREA = "Sanlúcar de Barrameda y alrededores"

OPERATION_LABELS = {Operation.RENT: "Alquiler", Operation.SALE: "Venta"}

NO_RESULTS_MESSAGE = (
    "Actualmente no tenemos propiedades que coincidan exactamente con esos criterios, "
    "pero nuestro catálogo se actualiza constantemente. "
    "¿Te gustaría que te avisemos cuando tengamos algo disponible?"
)

FALLBACK_SUGGESTIONS = ["Pisos en alquiler", "Casas en venta", "Ver destacados", "Contactar"]


@dataclass(frozen=True)
class Turn:
    """One incoming message, as seen by the rules."""
    message: str
    lowered: str
    conversation: Conversation


Predicate = Callable[[Turn], bool]
Handler = Callable[[Turn], Awaitable[ChatResponse]]


@dataclass(frozen=True)
class Rule:
    name: str
    predicate: Predicate
    handler: Handler


def exact(*phrases: str) -> Predicate:
    targets = frozenset(phrases)
    return lambda turn: turn.lowered in targets


def keywords(words: Sequence[str], max_length: Optional[int] = None) -> Predicate:
    def predicate(turn: Turn) -> bool:
        if max_length is not None and len(turn.message) >= max_length:
            return False
        return chat_rules.contains_keyword(turn.message, words)
    return predicate


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def format_price(value: Number) -> str:
    """Spanish number format: 950 → '950', 185000 → '185.000', 1234.5 → '1234,5'.

    Thousands are only grouped from five integer digits on, as es-ES does.
    """
    integer_part, _, fraction = f"{abs(float(value)):.3f}".partition(".")
    fraction = fraction.rstrip("0")
    if len(integer_part) > 4:
        integer_part = f"{int(integer_part):,}".replace(",", ".")
    text = f"{integer_part},{fraction}" if fraction else integer_part
    return f"-{text}" if value < 0 else text


def to_property_card(prop: NormalizedProperty) -> PropertyCard:
    return PropertyCard(
        id=prop.reference,
        reference=prop.reference,
        title=prop.title,
        slug=prop.slug,
        price=prop.price,
        operation=prop.operation,
        property_type=prop.property_subtype or prop.property_type,
        bedrooms=prop.rooms,
        bathrooms=prop.bathrooms,
        area_m2=prop.area or prop.area_built,
        city=prop.city,
        image=prop.images[0] if prop.images else None,
        canonical_url=prop.canonical_url,
    )


def format_properties_message(cards: List[PropertyCard], intro: Optional[str] = None) -> str:
    if not cards:
        return NO_RESULTS_MESSAGE

    plural = "es" if len(cards) > 1 else ""
    lines = [intro or f"Te muestro {len(cards)} propiedad{plural} que podrían interesarte:", ""]
    for card in cards:
        price = format_price(card.price)
        price_text = f"{price} €/mes" if card.operation == Operation.RENT else f"{price} €"
        details = f"💰 {price_text}"
        if card.bedrooms:
            details += f" • {card.bedrooms} hab."
        if card.area_m2:
            details += f" • {card.area_m2}m²"

        lines.append(f"🏠 {card.title}")
        lines.append(f"📍 {card.city} • {OPERATION_LABELS[card.operation]}")
        lines.append(details)
        lines.append("")
    return "\n".join(lines).strip()


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class ChatbotService:
    """Answers widget messages and keeps the conversation log."""

    def __init__(
        self,
        store: ConversationStore,
        client: EmblematicClient,
        company_phone: Optional[str] = None,
        company_email: Optional[str] = None,
        company_address: Optional[str] = None,
        company_schedule: Optional[str] = None,
    ):
        self.store = store
        self.client = client
        self.company_phone = settings.company_phone if company_phone is None else company_phone
        self.company_email = settings.company_email if company_email is None else company_email
        self.company_address = settings.company_address if company_address is None else company_address
        self.company_schedule = company_schedule or settings.company_schedule
        self.rules = self._build_rules()

    async def process_message(self, session_id: str, message: str, property_id: Optional[int] = None) -> ChatResponse:
        set_correlation_id(session_id)
        text = message.strip()

        conversation = await self.store.load_session(session_id, property_id)
        await self.store.append_message(conversation.id, MessageRole.USER, text)

        turn = Turn(message=text, lowered=text.lower(), conversation=conversation)
        rule = next(r for r in self.rules if r.predicate(turn))
        logger.info("Chat rule '%s' matched", rule.name, extra={"session_id": session_id})
        response = await rule.handler(turn)

        metadata = None
        if response.properties is not None:
            metadata = {"properties": [card.model_dump(mode="json", by_alias=True) for card in response.properties]}
        await self.store.append_message(conversation.id, MessageRole.BOT, response.message, metadata)

        return response

    # ------------------------------------------------------------------
    # Property lookups (never raise)
    # ------------------------------------------------------------------

    async def search(self, params: PropertySearchParams, limit: int = DEFAULT_RESULT_LIMIT) -> List[PropertyCard]:
        try:
            page = await search_properties(
                self.client,
                operation=params.operation,
                subtype_id=params.subtype_id,
                price_min=params.min_price,
                price_max=params.max_price,
                rooms=params.bedrooms,
            )
        except EmblematicError as exc:
            logger.warning("Chat property search failed: %s", exc.message, extra={"status_code": getattr(exc, "status_code", None)})
            return []
        return [to_property_card(p) for p in page.properties[:limit]]

    async def featured(self, limit: int = DEFAULT_RESULT_LIMIT) -> List[PropertyCard]:
        """Featured first, then latest, deduplicated by reference."""
        try:
            result = await get_featured_properties(self.client)
        except EmblematicError as exc:
            logger.warning("Chat featured lookup failed: %s", exc.message, extra={"status_code": getattr(exc, "status_code", None)})
            return []

        seen = set()
        cards: List[PropertyCard] = []
        for prop in result.featured + result.latest:
            if prop.reference in seen:
                continue
            seen.add(prop.reference)
            cards.append(to_property_card(prop))
        return cards[:limit]

    # ------------------------------------------------------------------
    # Reply builders
    # ------------------------------------------------------------------

    def _search_reply(
        self,
        intro: str,
        suggestions: List[str],
        limit: int = DEFAULT_RESULT_LIMIT,
        operation: Optional[Operation] = None,
        property_type: Optional[str] = None,
    ) -> Handler:
        params = PropertySearchParams(operation=operation, property_type=property_type)

        async def handler(turn: Turn) -> ChatResponse:
            cards = await self.search(params, limit)
            return ChatResponse(
                message=format_properties_message(cards, intro),
                properties=cards,
                suggestions=suggestions,
            )
        return handler

    def _static_reply(self, message: str, suggestions: Optional[List[str]] = None, ask_for_contact: Optional[bool] = None) -> Handler:
        async def handler(turn: Turn) -> ChatResponse:
            return ChatResponse(message=message, suggestions=suggestions, ask_for_contact=ask_for_contact)
        return handler

    def _featured_reply(self, empty_message: str) -> Handler:
        async def handler(turn: Turn) -> ChatResponse:
            cards = await self.featured(DEFAULT_RESULT_LIMIT)
            if cards:
                message = format_properties_message(cards, "⭐ Propiedades destacadas:")
            else:
                message = empty_message
                cards = await self.search(PropertySearchParams(), DEFAULT_RESULT_LIMIT)
            return ChatResponse(
                message=message,
                properties=cards,
                suggestions=["Me interesa una", "Ver pisos", "Ver casas", "Contactar"],
            )
        return handler

    def _contact_details(self) -> str:
        lines = []
        if self.company_phone:
            lines.append(f"📞 Teléfono: {self.company_phone}\n")
        if self.company_email:
            lines.append(f"📧 Email: {self.company_email}\n")
        if self.company_address:
            lines.append(f"📍 Oficina: {self.company_address}\n")
        return "".join(lines)

    def _contact_reply(self, opening: str, closing: str) -> Handler:
        async def handler(turn: Turn) -> ChatResponse:
            return ChatResponse(
                message=f"{opening}\n\n{self._contact_details()}\n{closing}",
                suggestions=["Dejar mis datos", "Ver propiedades", "Ver horarios"],
                ask_for_contact=True,
            )
        return handler

    async def _call_us(self, turn: Turn) -> ChatResponse:
        phone = self.company_phone or "nuestro teléfono de contacto"
        return ChatResponse(
            message=f"¡Por supuesto! Puedes llamarnos al {phone}.\n\nEstaremos encantados de atenderte.",
            suggestions=["Ver propiedades", "Ver horarios", "Gracias"],
        )

    async def _schedule(self, turn: Turn) -> ChatResponse:
        return ChatResponse(
            message=f"📅 Nuestro horario de atención:\n\n{self.company_schedule}",
            suggestions=["Ver propiedades", "Contactar", "Gracias"],
        )

    async def _schedule_question(self, turn: Turn) -> ChatResponse:
        return ChatResponse(
            message=f"📅 Nuestro horario de atención:\n\n{self.company_schedule}\n\n¿Te gustaría programar una cita?",
            suggestions=["Programar visita", "Ver propiedades", "No, gracias"],
        )

    async def _greeting(self, turn: Turn) -> ChatResponse:
        return ChatResponse(
            message=(
                f"¡Hola! 👋 Bienvenido a {settings.app_name}. Soy tu asistente virtual y estoy aquí "
                "para ayudarte a encontrar la propiedad ideal.\n\n¿Qué estás buscando?"
            ),
            suggestions=["Pisos en alquiler", "Casas en venta", "Ver destacados", "Hablar con un agente"],
        )

    async def _services(self, turn: Turn) -> ChatResponse:
        return ChatResponse(
            message=(
                f"En {settings.app_name} te ayudamos con:\n\n"
                "🏠 Compra y venta de viviendas\n"
                "🔑 Alquiler de pisos y casas\n"
                "📋 Valoración de inmuebles\n"
                "🤝 Asesoramiento personalizado\n\n"
                "¿En qué puedo ayudarte?"
            ),
            suggestions=["Busco para comprar", "Busco para alquilar", "Contactar"],
        )

    async def _keyword_search(self, turn: Turn) -> ChatResponse:
        params = chat_rules.build_search_params(turn.message)
        cards = await self.search(params, DEFAULT_RESULT_LIMIT)

        if params.operation == Operation.RENT:
            intro = "🔑 En alquiler"
        elif params.operation == Operation.SALE:
            intro = "🏷️ En venta"
        else:
            intro = "🏠 Propiedades"
        if params.bedrooms:
            intro += f" ({params.bedrooms}+ hab.)"
        intro += ":"

        if cards:
            return ChatResponse(
                message=format_properties_message(cards, intro),
                properties=cards,
                suggestions=["Ver más opciones", "Me interesa una", "Contactar"],
            )
        return ChatResponse(
            message="No encontré propiedades con esos criterios exactos. ¿Ampliamos la búsqueda?",
            properties=cards,
            suggestions=["Ver todo", "Cambiar filtros", "Contactar"],
        )

    async def _capture_contact(self, turn: Turn) -> ChatResponse:
        contact = chat_rules.extract_contact_info(turn.message)
        await self.store.update_status(
            turn.conversation.id,
            ChatStatus.LEAD_CAPTURED,
            name=contact.name,
            email=contact.email,
            phone=contact.phone,
        )
        logger.info("Lead captured from chat", extra={"session_id": turn.conversation.session_id})

        greeting = f", {contact.name}" if contact.name else ""
        return ChatResponse(
            message=f"¡Perfecto{greeting}! ✅\n\nHe registrado tus datos. Un agente te contactará pronto.\n\n¿Algo más?",
            suggestions=["Ver propiedades", "Ver horarios", "Eso es todo"],
        )

    # ------------------------------------------------------------------
    # Rule table
    # ------------------------------------------------------------------

    def _build_rules(self) -> List[Rule]:
        flats = ["Ver más pisos", "Me interesa uno", "Ver casas", "Contactar"]
        houses = ["Ver más casas", "Me interesa una", "Ver pisos", "Contactar"]
        by_operation = ["Ver pisos", "Ver casas", "Me interesa una", "Contactar"]
        browse = ["Solo alquiler", "Solo venta", "Me interesa una", "Contactar"]
        leave_details = ["Prefiero llamar yo", "Ver propiedades primero"]
        rent, sale = Operation.RENT, Operation.SALE

        def has_contact(turn: Turn) -> bool:
            return chat_rules.extract_contact_info(turn.message).is_reachable

        def asks_for_contact(turn: Turn) -> bool:
            # Mensagens que já trazem email/telefone seguem para a captura de contacto
            wants = chat_rules.contains_keyword(turn.message, chat_rules.CONTACT) or \
                chat_rules.contains_keyword(turn.message, chat_rules.VISIT)
            return wants and not has_contact(turn)

        return [
            # Sugestões exatas
            Rule("rent_flats", exact("pisos en alquiler", "ver pisos en alquiler"),
                 self._search_reply("🔑 Pisos en alquiler:", flats, operation=rent, property_type="FLAT")),
            Rule("sale_flats", exact("pisos en venta", "ver pisos en venta"),
                 self._search_reply("🏷️ Pisos en venta:", flats, operation=sale, property_type="FLAT")),
            Rule("rent_houses", exact("casas en alquiler", "ver casas en alquiler"),
                 self._search_reply("🔑 Casas en alquiler:", houses, operation=rent, property_type="HOUSE")),
            Rule("sale_houses", exact("casas en venta", "ver casas en venta"),
                 self._search_reply("🏷️ Casas en venta:", houses, operation=sale, property_type="HOUSE")),
            Rule("flats", exact("ver pisos", "pisos"),
                 self._search_reply("🏠 Pisos disponibles:", ["Solo alquiler", "Solo venta", "Me interesa uno", "Contactar"], property_type="FLAT")),
            Rule("houses", exact("ver casas", "casas"),
                 self._search_reply("🏡 Casas disponibles:", browse, property_type="HOUSE")),
            Rule("featured", exact("ver destacados", "ver propiedades destacadas", "destacados", "propiedades destacadas"),
                 self._featured_reply("Actualmente no hay propiedades destacadas. Te muestro las más recientes.")),
            Rule("talk_to_agent", exact("hablar con un agente", "contactar", "contactar con agente", "contactar con un agente"),
                 self._contact_reply("Estaremos encantados de atenderte personalmente.",
                                     "¿Quieres que te llamemos? Déjame tu teléfono o email.")),
            Rule("more_options", exact("ver más opciones", "ver mas opciones", "ver más propiedades", "ver mas propiedades",
                                       "ver más", "ver mas", "más opciones"),
                 self._search_reply("Más propiedades disponibles:", browse, limit=WIDE_RESULT_LIMIT)),
            Rule("rent_only", exact("solo alquiler", "ver todo en alquiler", "todo en alquiler"),
                 self._search_reply("🔑 Propiedades en alquiler:", by_operation, operation=rent)),
            Rule("sale_only", exact("solo venta", "ver todo en venta", "todo en venta"),
                 self._search_reply("🏷️ Propiedades en venta:", by_operation, operation=sale)),
            Rule("interested", exact("me interesa una", "me interesa uno", "me interesa", "me gusta"),
                 self._static_reply(
                     "¡Estupendo! 🎉\n\nPara enviarte información detallada y coordinar una visita, "
                     "necesito tus datos de contacto.\n\n¿Puedes indicarme tu teléfono o email?",
                     ["Prefiero llamar yo", "Ver más propiedades"],
                     ask_for_contact=True,
                 )),
            Rule("leave_details", exact("dejar mis datos", "dejar datos", "mis datos"),
                 self._static_reply(
                     "Perfecto, indícame tu teléfono o email y un agente se pondrá en contacto contigo lo antes posible.",
                     leave_details,
                     ask_for_contact=True,
                 )),
            Rule("call_us", exact("prefiero llamar yo", "llamar yo", "llamo yo"), self._call_us),
            Rule("browse", exact("ver propiedades", "ver propiedades primero", "buscar propiedades", "buscar más propiedades"),
                 self._search_reply("🏠 Propiedades disponibles:", ["Pisos en alquiler", "Casas en venta", "Me interesa una", "Contactar"])),
            Rule("schedule", exact("ver horarios", "horarios", "información de horarios", "informacion de horarios"),
                 self._schedule),
            Rule("book_visit", exact("programar una visita", "programar visita", "sí, programar cita", "si, programar cita"),
                 self._static_reply(
                     "Para programar una visita, necesito tus datos de contacto. Un agente te llamará para "
                     "acordar el día y hora que mejor te venga.\n\n¿Cuál es tu teléfono o email?",
                     leave_details,
                     ask_for_contact=True,
                 )),
            Rule("thats_all", exact("eso es todo", "eso es todo, gracias", "eso es todo gracias", "nada más"),
                 self._static_reply(
                     "¡Perfecto! Ha sido un placer ayudarte. Si necesitas algo más, aquí estaré. ¡Que tengas un excelente día! 👋",
                     ["Ver propiedades", "Contactar"],
                 )),
            Rule("thanks", exact("gracias", "muchas gracias", "ok gracias"),
                 self._static_reply("¡De nada! 😊 ¿Hay algo más en lo que pueda ayudarte?",
                                    ["Ver propiedades", "Contactar", "Eso es todo"])),
            Rule("no_thanks", exact("no, gracias", "no gracias", "ahora no"),
                 self._static_reply("De acuerdo. Si cambias de opinión, aquí estaré para ayudarte. 😊",
                                    ["Ver propiedades", "Ver destacados", "Contactar"])),
            Rule("change_filters", exact("cambiar filtros", "otros filtros"),
                 self._static_reply("¿Qué tipo de propiedad te interesa?",
                                    ["Pisos en alquiler", "Casas en venta", "Ver todo", "Contactar"])),
            Rule("any_type", exact("cualquier tipo", "ver todo", "ver todas las opciones"),
                 self._search_reply("Todas las propiedades disponibles:", browse, limit=WIDE_RESULT_LIMIT)),
            Rule("want_to_buy", exact("busco para comprar", "quiero comprar", "quiero comprar una casa"),
                 self._search_reply("🏷️ Propiedades en venta:", by_operation, operation=sale)),
            Rule("want_to_rent", exact("busco para alquilar", "busco piso en alquiler"),
                 self._search_reply("🔑 Propiedades en alquiler:", by_operation, operation=rent)),

            # Palavras-chave
            Rule("greeting", keywords(chat_rules.GREETING, GREETING_MAX_LENGTH), self._greeting),
            Rule("goodbye", keywords(chat_rules.GOODBYE),
                 self._static_reply("¡Hasta pronto! 👋 Ha sido un placer atenderte. Si tienes más preguntas, "
                                    "aquí estaré. ¡Que tengas un excelente día!")),
            Rule("thanks_keyword", keywords(chat_rules.THANKS, THANKS_MAX_LENGTH),
                 self._static_reply("¡De nada! 😊 ¿Hay algo más en lo que pueda ayudarte?",
                                    ["Ver propiedades", "Contactar", "Eso es todo"])),
            Rule("schedule_keyword", keywords(chat_rules.SCHEDULE), self._schedule_question),
            Rule("contact_request", asks_for_contact,
                 self._contact_reply("Estaremos encantados de atenderte.", "¿Quieres que te llamemos?")),
            Rule("services", keywords(chat_rules.SERVICES), self._services),
            Rule("featured_keyword", lambda turn: chat_rules.is_featured_request(turn.message),
                 self._featured_reply("Te muestro nuestras propiedades más recientes.")),
            Rule("property_search", lambda turn: chat_rules.is_property_search(turn.message), self._keyword_search),
            Rule("price", keywords(chat_rules.PRICE),
                 self._static_reply("Los precios varían según el tipo y ubicación. ¿Qué buscas y cuál es tu presupuesto?",
                                    ["Pisos en alquiler", "Casas en venta", "Ver todo"])),
            Rule("location", keywords(chat_rules.LOCATION),
                 self._static_reply(f"Trabajamos en {SERVICE_AREA}. ¿Qué tipo de propiedad buscas?",
                                    ["Ver pisos", "Ver casas", "Contactar"])),

            # Dados de contacto
            Rule("contact_capture", has_contact, self._capture_contact),

            # Respostas curtas
            Rule("yes", keywords(chat_rules.YES, YES_MAX_LENGTH),
                 self._static_reply("¡Perfecto! ¿En qué puedo ayudarte?", ["Ver propiedades", "Contactar", "Ver destacados"])),
            Rule("no", keywords(chat_rules.NO, NO_MAX_LENGTH),
                 self._static_reply("De acuerdo. Si necesitas algo, aquí estaré. 😊",
                                    ["Ver propiedades", "Ver destacados", "Contactar"])),

            Rule("fallback", lambda turn: True,
                 self._static_reply("Disculpa, no he entendido bien. ¿Puedo ayudarte con alguna de estas opciones?",
                                    FALLBACK_SUGGESTIONS)),
        ]
