"""Tests for the chatbot dialogue policy (in-memory store, fake upstream)."""
import httpx
import pytest

from korvalia.schemas.chat_schema import ChatStatus, MessageRole
from korvalia.services.chatbot_service import ChatbotService, format_price, format_properties_message
from korvalia.services.conversation_store import InMemoryConversationStore
from tests.conftest import FakeEmblematic, make_offer, make_offers_page


@pytest.fixture
def store() -> InMemoryConversationStore:
    return InMemoryConversationStore()


@pytest.fixture
def chatbot(store, emblematic) -> ChatbotService:
    return ChatbotService(
        store,
        emblematic,
        company_phone="956 000 000",
        company_email="info@korvalia.test",
        company_address="Calle Ancha 1, Sanlúcar",
        company_schedule="L-V 9:00-14:00",
    )


def rental_flat(**overrides) -> dict:
    defaults = dict(
        reference="A1",
        title="Piso en alquiler",
        mode_name="Alquiler mensual",
        features={
            "prices": [{"name": "Alquiler", "value": "950"}],
            "areas": [{"name": "Superficie construida", "value": "80"}],
            "more_features": [{"name": "Hab.", "value": 2}],
        },
    )
    defaults.update(overrides)
    return make_offer(**defaults)


class TestFormatting:
    @pytest.mark.parametrize(
        "value,expected",
        [(950, "950"), (1500, "1500"), (10000, "10.000"), (185000, "185.000"), (1250000, "1.250.000"), (1234.5, "1234,5")],
    )
    def test_format_price(self, value, expected):
        assert format_price(value) == expected

    def test_no_properties(self):
        assert format_properties_message([]).startswith("Actualmente no tenemos propiedades")


class TestRuleOrder:
    @pytest.mark.asyncio
    async def test_rule_order(self, chatbot):
        assert [rule.name for rule in chatbot.rules] == [
            # exact phrases
            "rent_flats", "sale_flats", "rent_houses", "sale_houses", "flats", "houses",
            "featured", "talk_to_agent", "more_options", "rent_only", "sale_only", "interested",
            "leave_details", "call_us", "browse", "schedule", "book_visit", "thats_all",
            "thanks", "no_thanks", "change_filters", "any_type", "want_to_buy", "want_to_rent",
            # keyword classes
            "greeting", "goodbye", "thanks_keyword", "schedule_keyword", "contact_request",
            "services", "featured_keyword", "property_search", "price", "location",
            "contact_capture",
            "yes", "no",
            "fallback",
        ]


class TestExactPhrases:
    @pytest.mark.asyncio
    async def test_rental_flats_shortcut(self, chatbot, upstream):
        upstream.routes["/offers/1"] = make_offers_page([rental_flat()])
        response = await chatbot.process_message("s1", "Pisos en alquiler")

        assert response.message.startswith("🔑 Pisos en alquiler:")
        assert "950 €/mes" in response.message
        assert "2 hab." in response.message
        assert "80m²" in response.message
        assert response.suggestions == ["Ver más pisos", "Me interesa uno", "Ver casas", "Contactar"]
        card = response.properties[0]
        assert card.id == "A1"
        assert card.property_type == "Piso"
        assert card.area_m2 == 80

        params = upstream.requests[0].url.params
        assert params["mode_id"] == "2"
        assert params["subtype_id"] == "46458"

    @pytest.mark.asyncio
    async def test_exact_phrase_beats_keyword_classes(self, chatbot, upstream):
        # "no gracias" also holds the "gracias" thanks keyword and the "no" keyword
        response = await chatbot.process_message("s1", "No gracias")
        assert response.message.startswith("De acuerdo. Si cambias de opinión")
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_exact_match_only_after_lowercasing(self, chatbot, upstream):
        upstream.routes["/offers/1"] = make_offers_page([])
        response = await chatbot.process_message("s1", "pisos en alquiler, por favor")
        # not the shortcut: keyword search instead
        assert response.suggestions == ["Ver todo", "Cambiar filtros", "Contactar"]

    @pytest.mark.asyncio
    async def test_talk_to_agent(self, chatbot):
        response = await chatbot.process_message("s1", "Hablar con un agente")
        assert response.ask_for_contact is True
        assert "📞 Teléfono: 956 000 000" in response.message
        assert "📧 Email: info@korvalia.test" in response.message
        assert response.message.endswith("¿Quieres que te llamemos? Déjame tu teléfono o email.")

    @pytest.mark.asyncio
    async def test_schedule_from_settings(self, chatbot):
        response = await chatbot.process_message("s1", "ver horarios")
        assert response.message == "📅 Nuestro horario de atención:\n\nL-V 9:00-14:00"

    @pytest.mark.asyncio
    async def test_featured_dedupes_by_reference(self, chatbot, upstream):
        upstream.routes["/offers/featured"] = {
            "featured": [make_offer(reference="F1"), make_offer(reference="F2")],
            "latest": [make_offer(reference="F2"), make_offer(reference="L1")],
        }
        response = await chatbot.process_message("s1", "ver destacados")
        assert [c.reference for c in response.properties] == ["F1", "F2", "L1"]
        assert response.message.startswith("⭐ Propiedades destacadas:")


class TestKeywordClasses:
    @pytest.mark.asyncio
    async def test_greeting(self, chatbot):
        response = await chatbot.process_message("s1", "Hola!")
        assert response.message.startswith("¡Hola! 👋")
        assert "Hablar con un agente" in response.suggestions

    @pytest.mark.asyncio
    async def test_long_greeting_is_not_a_greeting(self, chatbot, upstream):
        upstream.routes["/offers/1"] = make_offers_page([])
        response = await chatbot.process_message("s1", "hola, busco un piso en alquiler en el centro")
        assert not response.message.startswith("¡Hola!")

    @pytest.mark.asyncio
    async def test_keyword_search(self, chatbot, upstream):
        upstream.routes["/offers/1"] = make_offers_page([rental_flat()])
        response = await chatbot.process_message("s1", "busco piso de 2 habitaciones en alquiler hasta 900 €")
        assert response.message.startswith("🔑 En alquiler (2+ hab.):")
        params = upstream.requests[0].url.params
        assert params["mode_id"] == "2"
        assert params["rooms"] == "2"
        assert params["feature_price_to"] == "900"

    @pytest.mark.asyncio
    async def test_contact_request(self, chatbot):
        response = await chatbot.process_message("s1", "quiero hablar con un asesor")
        assert response.ask_for_contact is True
        assert response.message.startswith("Estaremos encantados de atenderte.")

    @pytest.mark.asyncio
    async def test_price_question(self, chatbot, upstream):
        response = await chatbot.process_message("s1", "¿cuánto cuesta?")
        assert response.message.startswith("Los precios varían según el tipo y ubicación.")
        assert response.suggestions == ["Pisos en alquiler", "Casas en venta", "Ver todo"]
        assert upstream.requests == []

    @pytest.mark.asyncio
    async def test_location_question(self, chatbot):
        response = await chatbot.process_message("s1", "¿en qué barrio estáis?")
        assert response.message == "Trabajamos en Sanlúcar de Barrameda y alrededores. ¿Qué tipo de propiedad buscas?"
        assert response.suggestions == ["Ver pisos", "Ver casas", "Contactar"]

    @pytest.mark.asyncio
    async def test_short_yes(self, chatbot):
        response = await chatbot.process_message("s1", "ok")
        assert response.message == "¡Perfecto! ¿En qué puedo ayudarte?"

    @pytest.mark.asyncio
    async def test_long_yes_is_not_a_yes(self, chatbot):
        message = "ok ok ok ok ok ok ok"
        assert len(message) == 20
        response = await chatbot.process_message("s1", message)
        assert response.message.startswith("Disculpa, no he entendido bien")

    @pytest.mark.asyncio
    async def test_short_no(self, chatbot):
        response = await chatbot.process_message("s1", "no")
        assert response.message == "De acuerdo. Si necesitas algo, aquí estaré. 😊"
        assert response.suggestions == ["Ver propiedades", "Ver destacados", "Contactar"]

    @pytest.mark.asyncio
    async def test_long_no_is_not_a_no(self, chatbot):
        message = "no no no no no no no no no"
        assert len(message) == 26
        response = await chatbot.process_message("s1", message)
        assert response.message.startswith("Disculpa, no he entendido bien")

    @pytest.mark.asyncio
    async def test_fallback(self, chatbot):
        response = await chatbot.process_message("s1", "xyzzy")
        assert response.message.startswith("Disculpa, no he entendido bien")
        assert response.suggestions == ["Pisos en alquiler", "Casas en venta", "Ver destacados", "Contactar"]


class TestContactCapture:
    @pytest.mark.asyncio
    async def test_name_and_email_mark_lead(self, chatbot, store):
        response = await chatbot.process_message("s1", "soy Juan, mi email es juan@test.com")
        assert response.message.startswith("¡Perfecto, Juan! ✅")

        conversation = await store.load_session("s1")
        assert conversation.status == ChatStatus.LEAD_CAPTURED
        assert conversation.visitor_name == "Juan"
        assert conversation.visitor_email == "juan@test.com"

    @pytest.mark.asyncio
    async def test_phone_only_keeps_previous_details(self, chatbot, store):
        await chatbot.process_message("s1", "soy Ana, ana@test.com")
        await chatbot.process_message("s1", "612 345 678")
        conversation = await store.load_session("s1")
        assert conversation.visitor_name == "Ana"
        assert conversation.visitor_email == "ana@test.com"
        assert conversation.visitor_phone == "612345678"


class TestConversationLog:
    @pytest.mark.asyncio
    async def test_both_turns_logged(self, chatbot, store, upstream):
        upstream.routes["/offers/1"] = make_offers_page([rental_flat()])
        await chatbot.process_message("s1", "  Hola  ")
        await chatbot.process_message("s1", "pisos en alquiler")

        history = await store.get_history("s1")
        assert [m.role for m in history] == [MessageRole.USER, MessageRole.BOT, MessageRole.USER, MessageRole.BOT]
        assert history[0].content == "Hola"
        assert history[1].metadata is None
        assert history[3].metadata["properties"][0]["reference"] == "A1"
        assert history[3].metadata["properties"][0]["areaM2"] == 80

    @pytest.mark.asyncio
    async def test_property_page_source(self, chatbot, store):
        await chatbot.process_message("s2", "hola", property_id=42)
        conversation = await store.load_session("s2")
        assert conversation.source == "property_page"
        assert conversation.property_id == 42


class TestUpstreamFailures:
    @pytest.mark.asyncio
    async def test_search_failure_degrades_to_no_results(self, chatbot, store, upstream):
        upstream.routes["/offers/1"] = httpx.Response(500)
        response = await chatbot.process_message("s1", "casas en venta")
        assert response.properties == []
        assert response.message.startswith("Actualmente no tenemos propiedades")
        assert len(await store.get_history("s1")) == 2

    @pytest.mark.asyncio
    async def test_not_configured_degrades(self, store):
        unconfigured = FakeEmblematic().client(token="")
        chatbot = ChatbotService(store, unconfigured)
        response = await chatbot.process_message("s1", "ver propiedades")
        assert response.properties == []
        await unconfigured.aclose()

    @pytest.mark.asyncio
    async def test_featured_failure_falls_back_to_search(self, chatbot, upstream):
        upstream.routes["/offers/featured"] = httpx.Response(503)
        upstream.routes["/offers/1"] = make_offers_page([rental_flat()])
        response = await chatbot.process_message("s1", "¿qué me recomendarías?")
        assert response.message == "Te muestro nuestras propiedades más recientes."
        assert [c.reference for c in response.properties] == ["A1"]
