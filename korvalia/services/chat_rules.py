"""Chat rules: keyword tables and regex extractors used by the chatbot.

Pure text functions, no I/O. Keyword matching is accent- and case-insensitive
substring search; "no match" is always a normal result (None / empty), never
an exception.

The price-range heuristic is deliberately approximate and tuned for Spanish
phrasing ("hasta 900 €", "desde 150.000 euros"). It reproduces the behavior
the site has always had; it is not meant to be a better parser.
"""
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from korvalia.schemas.property_schema import Operation
from korvalia.services.slug_service import strip_accents


GREETING = [
    "hola", "buenas", "buenos días", "buenos dias", "buenas tardes",
    "buenas noches", "hey", "saludos", "qué tal", "que tal",
]

GOODBYE = [
    "adiós", "adios", "hasta luego", "chao", "bye", "nos vemos",
    "hasta pronto", "me voy",
]

THANKS = [
    "gracias", "muchas gracias", "te lo agradezco", "genial", "perfecto",
    "estupendo", "excelente",
]

YES = ["sí", "si", "claro", "por supuesto", "vale", "ok", "de acuerdo", "adelante"]

NO = ["no", "no gracias", "ahora no", "quizás luego", "mejor no"]

RENT = [
    "alquiler", "alquilar", "arrendar", "renta", "rentar", "alquilo",
    "para alquilar", "en alquiler",
]

SALE = [
    "comprar", "compra", "venta", "vender", "adquirir", "compro",
    "para comprar", "en venta",
]

# Ordem importa: a primeira palavra encontrada define o tipo
PROPERTY_TYPES: Dict[str, str] = {
    "piso": "FLAT",
    "pisos": "FLAT",
    "apartamento": "APARTMENT",
    "apartamentos": "APARTMENT",
    "casa": "HOUSE",
    "casas": "HOUSE",
    "chalet": "HOUSE",
    "chalets": "HOUSE",
    "vivienda": "FLAT",
    "viviendas": "FLAT",
    "ático": "PENTHOUSE",
    "atico": "PENTHOUSE",
    "áticos": "PENTHOUSE",
    "aticos": "PENTHOUSE",
    "dúplex": "DUPLEX",
    "duplex": "DUPLEX",
    "terreno": "LAND",
    "terrenos": "LAND",
    "parcela": "LAND",
    "parcelas": "LAND",
    "local": "COMMERCIAL",
    "locales": "COMMERCIAL",
    "nave": "COMMERCIAL",
    "garaje": "GARAGE",
    "garajes": "GARAGE",
    "parking": "GARAGE",
    "plaza de garaje": "GARAGE",
}

# subtype_id do CRM para cada tipo detetado
PROPERTY_TYPE_SUBTYPE_IDS: Dict[str, int] = {
    "FLAT": 46458,        # Piso
    "APARTMENT": 46449,   # Apartamento
    "HOUSE": 46452,       # Casa
    "PENTHOUSE": 46450,   # Ático
    "DUPLEX": 46455,      # Dúplex
    "LAND": 46498,        # Solar
    "COMMERCIAL": 46484,  # Local comercial
    "GARAGE": 46468,      # Garaje
}

CONTACT = [
    "contacto", "contactar", "llamar", "teléfono", "telefono", "email",
    "correo", "whatsapp", "hablar con", "agente", "asesor", "comercial",
]

VISIT = [
    "visita", "visitar", "ver el piso", "ver la casa", "ver la vivienda",
    "conocer", "enseñar", "mostrar", "cita", "quedar",
]

SCHEDULE = [
    "horario", "hora", "abren", "abierto", "cerrado", "cuando", "cuándo",
    "atienden", "disponibilidad",
]

PRICE = [
    "precio", "precios", "costar", "cuesta", "cuestan", "vale", "valen",
    "presupuesto", "económico", "barato", "caro",
]

LOCATION = [
    "ubicación", "ubicacion", "zona", "barrio", "donde", "dónde",
    "localización", "localizacion", "dirección", "direccion", "calle",
]

INTEREST = [
    "interesa", "interesado", "interesada", "me gusta", "quiero",
    "quisiera", "gustaría", "gustaria", "necesito", "busco",
]

SERVICES = [
    "servicios", "qué hacéis", "que haceis", "a qué os dedicáis",
    "qué ofrecéis", "ayuda", "ayudar",
]

FEATURED_MARKERS = ("destacad", "recomend")

UPPER_BOUND_MARKERS = ("hasta", "máximo", "maximo", "menos de", "no más de", "como mucho")
LOWER_BOUND_MARKERS = ("desde", "mínimo", "minimo", "más de", "al menos", "como poco")

PRICE_BAND = 0.2
MAX_PLAUSIBLE_PRICE = 10_000_000

_BEDROOM_PATTERNS = [
    re.compile(r"(\d+)\s*(?:habitacion|habitaciones|dormitorio|dormitorios|cuarto|cuartos)", re.IGNORECASE),
    re.compile(r"(?:de\s+)?(\d+)\s*(?:hab|dorm)", re.IGNORECASE),
    re.compile(r"(\d+)\s*(?:h|d)(?:\s|$|,|\.)", re.IGNORECASE),
]

# Ordem importa: valores com moeda primeiro, números soltos por último
_PRICE_PATTERNS = [
    re.compile(r"(\d+(?:[.,]\d{3})*)\s*(?:€|euros?|eur)", re.IGNORECASE),
    re.compile(r"(?:€|euros?)\s*(\d+(?:[.,]\d{3})*)", re.IGNORECASE),
    re.compile(r"(\d{3,})\s*(?:€|euros?|eur|al mes|mensuales?)?", re.IGNORECASE),
]

_EMAIL_PATTERN = re.compile(r"[A-Za-z0-9_.-]+@[A-Za-z0-9_.-]+\.[A-Za-z0-9_]{2,}")
_PHONE_PATTERN = re.compile(r"(?:\+34\s?)?[6789]\d{2}[\s.-]?\d{3}[\s.-]?\d{3}")
_PHONE_SEPARATORS = re.compile(r"[\s.-]")
_NAME_PATTERN = re.compile(
    r"(?:me llamo|soy|mi nombre es)\s+([A-Za-záéíóúñÁÉÍÓÚÑ]+(?:\s+[A-Za-záéíóúñÁÉÍÓÚÑ]+)?)",
    re.IGNORECASE,
)


@dataclass(frozen=True)
class PriceRange:
    min: Optional[float] = None
    max: Optional[float] = None


@dataclass(frozen=True)
class ContactInfo:
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @property
    def is_reachable(self) -> bool:
        return bool(self.email or self.phone)


@dataclass(frozen=True)
class PropertySearchParams:
    operation: Optional[Operation] = None
    property_type: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    bedrooms: Optional[int] = None

    @property
    def subtype_id(self) -> Optional[int]:
        if not self.property_type:
            return None
        return PROPERTY_TYPE_SUBTYPE_IDS.get(self.property_type)


def normalize_text(text: str) -> str:
    """Lowercase and strip accents for keyword comparison."""
    return strip_accents(text.lower())


def contains_keyword(message: str, keywords: Sequence[str]) -> bool:
    normalized = normalize_text(message)
    return any(normalize_text(keyword) in normalized for keyword in keywords)


def detect_property_type(message: str) -> Optional[str]:
    normalized = normalize_text(message)
    for keyword, property_type in PROPERTY_TYPES.items():
        if normalize_text(keyword) in normalized:
            return property_type
    return None


def detect_operation(message: str) -> Optional[Operation]:
    if contains_keyword(message, RENT):
        return Operation.RENT
    if contains_keyword(message, SALE):
        return Operation.SALE
    return None


def extract_bedrooms(message: str) -> Optional[int]:
    """'piso de 3 habitaciones' → 3. Only 1..10 is accepted."""
    for pattern in _BEDROOM_PATTERNS:
        match = pattern.search(message)
        if match:
            count = int(match.group(1))
            if 1 <= count <= 10:
                return count
    return None


def _parse_amount(raw: str) -> float:
    # Os padrões só aceitam [.,] seguidos de 3 dígitos: são separadores de milhares
    return float(raw.replace(".", "").replace(",", ""))


def _find_prices(message: str) -> List[float]:
    prices: List[float] = []
    taken: List[Tuple[int, int]] = []
    for pattern in _PRICE_PATTERNS:
        for match in pattern.finditer(message):
            start, end = match.span(1)
            if any(start < t_end and t_start < end for t_start, t_end in taken):
                continue
            taken.append((start, end))
            price = _parse_amount(match.group(1))
            if 0 < price < MAX_PLAUSIBLE_PRICE:
                prices.append(price)
    return prices


def extract_price_range(message: str) -> PriceRange:
    """Best-effort price band from free text.

    - upper-bound words ("hasta", "máximo", ...) → max of the numbers found
    - lower-bound words ("desde", "mínimo", ...) → min of the numbers found
    - a single number and no indicator → ±20 % around it
    - several numbers and no indicator → min/max of the set
    """
    prices = _find_prices(message)
    if not prices:
        return PriceRange()

    lowered = message.lower()
    if any(marker in lowered for marker in UPPER_BOUND_MARKERS):
        return PriceRange(max=max(prices))
    if any(marker in lowered for marker in LOWER_BOUND_MARKERS):
        return PriceRange(min=min(prices))
    if len(prices) == 1:
        return PriceRange(min=prices[0] * (1 - PRICE_BAND), max=prices[0] * (1 + PRICE_BAND))
    return PriceRange(min=min(prices), max=max(prices))


def extract_contact_info(message: str) -> ContactInfo:
    """Email, Spanish phone number and "me llamo / soy / mi nombre es X" name."""
    email_match = _EMAIL_PATTERN.search(message)
    phone_match = _PHONE_PATTERN.search(message)
    name_match = _NAME_PATTERN.search(message)

    return ContactInfo(
        name=name_match.group(1).strip() if name_match else None,
        email=email_match.group(0) if email_match else None,
        phone=_PHONE_SEPARATORS.sub("", phone_match.group(0)) if phone_match else None,
    )


def build_search_params(message: str) -> PropertySearchParams:
    """Operation, property type, bedrooms and price band detected in a message."""
    price_range = extract_price_range(message)
    return PropertySearchParams(
        operation=detect_operation(message),
        property_type=detect_property_type(message),
        bedrooms=extract_bedrooms(message),
        min_price=price_range.min or None,
        max_price=price_range.max or None,
    )


def is_property_search(message: str) -> bool:
    return (
        contains_keyword(message, RENT)
        or contains_keyword(message, SALE)
        or contains_keyword(message, INTEREST)
        or detect_property_type(message) is not None
    )


def is_featured_request(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in FEATURED_MARKERS)
