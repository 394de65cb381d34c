"""Emblematic CRM client: typed, paginated, async access to the offers feed.

Rules:
1. Credential checked before any network call (NotConfiguredError)
2. Bearer token on every request; array filters sent as repeated key[] params
3. 401 → UnauthorizedError, 429 → RateLimitedError, any other non-2xx,
   transport failure or invalid JSON → UpstreamError (status code preserved)
4. Timeouts → UpstreamTimeoutError; they are never turned into "not found"
5. Reference lookup falls back to a sequential page scan when /offer/{ref}
   returns incomplete data

Docs: https://app.emblematic.es/api/documentation
"""
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

import httpx

from korvalia.config import settings
from korvalia.core.exceptions import (
    NotConfiguredError,
    RateLimitedError,
    UnauthorizedError,
    UpstreamError,
    UpstreamTimeoutError,
)
from korvalia.core.logging import get_logger
from korvalia.schemas.emblematic_schema import (
    DEFAULT_LISTS,
    FeaturedBundle,
    OffersPage,
    SearchFilters,
)
from korvalia.services.extractors import extract_numeric

logger = get_logger(__name__)

QueryParams = List[Tuple[str, str]]


def _format_param(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return str(round(value, 2))
    return str(value)


def build_query_params(params: Optional[Dict[str, Any]]) -> QueryParams:
    """Flatten filters into query pairs: lists become repeated 'key[]' entries, None is dropped."""
    query: QueryParams = []
    if not params:
        return query
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, (list, tuple)):
            query.extend((f"{key}[]", _format_param(item)) for item in value)
        else:
            query.append((key, _format_param(value)))
    return query


def _as_int(value: Any, default: int) -> int:
    number = extract_numeric(value)
    return int(number) if number is not None else default


def _dict_items(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _matches_reference(offers: Iterable[Dict[str, Any]], reference: str) -> Optional[Dict[str, Any]]:
    for offer in offers:
        if str(offer.get("reference")) == reference:
            return offer
    return None


class EmblematicClient:
    """Async client for the Emblematic REST API."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.emblematic_api_url).rstrip("/")
        self.token = settings.emblematic_token if token is None else token
        self.timeout = timeout or settings.emblematic_timeout

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {self.token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.token)

    async def _get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET an endpoint and return the decoded JSON body."""
        if not self.is_configured:
            raise NotConfiguredError("Emblematic is not configured: EMBLEMATIC_TOKEN is missing")

        query = build_query_params(params)
        started = time.monotonic()
        logger.debug("Fetching %s %s", endpoint, query, extra={"endpoint": endpoint})

        try:
            response = await self._client.get(endpoint, params=query)
        except httpx.TimeoutException as exc:
            logger.error("Timeout (%ss) fetching %s", self.timeout, endpoint, extra={"endpoint": endpoint})
            raise UpstreamTimeoutError(f"Emblematic: timeout fetching {endpoint}") from exc
        except httpx.HTTPError as exc:
            logger.error("Request error for %s: %s", endpoint, str(exc), extra={"endpoint": endpoint})
            raise UpstreamError(f"Emblematic: request failed for {endpoint}", detail=str(exc)) from exc

        status = response.status_code
        duration = round(time.monotonic() - started, 3)

        if not response.is_success:
            logger.error(
                "HTTP %d for %s: %s",
                status,
                endpoint,
                response.text[:500],
                extra={"endpoint": endpoint, "status_code": status, "duration": duration},
            )
            if status == 401:
                raise UnauthorizedError("Emblematic: invalid authorization token")
            if status == 429:
                raise RateLimitedError("Emblematic: too many requests, try again later")
            raise UpstreamError(f"Emblematic: Error {status}", status_code=status)

        logger.debug(
            "HTTP %d for %s",
            status,
            endpoint,
            extra={"endpoint": endpoint, "status_code": status, "duration": duration},
        )
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(f"Emblematic: invalid JSON from {endpoint}", status_code=status) from exc

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def check_status(self) -> Dict[str, Any]:
        data = await self._get("/status")
        return data if isinstance(data, dict) else {"message": str(data)}

    async def get_lists(
        self,
        lists: Optional[List[str]] = None,
        country_id: Optional[int] = None,
        region_id: Optional[int] = None,
        city_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Dynamic filter values (modes, types, subtypes, features, geography), optionally scoped."""
        data = await self._get(
            "/lists",
            {
                "lists": list(lists or DEFAULT_LISTS),
                "country_id": country_id,
                "region_id": region_id,
                "city_id": city_id,
            },
        )
        if not isinstance(data, dict):
            raise UpstreamError("Emblematic: unexpected /lists payload")
        return data

    async def get_offers(self, filters: Optional[SearchFilters] = None, page: int = 1) -> OffersPage:
        """One page of the offers listing, as the raw envelope."""
        data = await self._get(f"/offers/{page}", filters.to_query() if filters else None)
        if not isinstance(data, dict):
            raise UpstreamError(f"Emblematic: unexpected /offers/{page} payload")

        current_page = _as_int(data.get("current_page"), page)
        return OffersPage(
            total=_as_int(data.get("total"), 0),
            per_page=_as_int(data.get("per_page"), 0),
            current_page=current_page,
            last_page=max(_as_int(data.get("last_page"), current_page), 1),
            offers=_dict_items(data.get("offers")),
        )

    async def get_featured(self) -> FeaturedBundle:
        data = await self._get("/offers/featured")
        if not isinstance(data, dict):
            raise UpstreamError("Emblematic: unexpected /offers/featured payload")

        bundle = FeaturedBundle(
            featured=_dict_items(data.get("featured")),
            latest=_dict_items(data.get("latest")),
            footer=_dict_items(data.get("footer")),
        )
        logger.info(
            "Featured response: featured=%d latest=%d footer=%d",
            len(bundle.featured),
            len(bundle.latest),
            len(bundle.footer),
        )
        return bundle

    async def get_offer_by_reference(self, reference: str) -> Optional[Dict[str, Any]]:
        """Direct lookup, falling back to a listing scan when the detail payload is incomplete.

        The /offer/{ref} endpoint answers in a different (often partial) shape
        than the listing. Returns None when the reference does not exist.
        """
        reference = str(reference)
        try:
            payload = await self._get(f"/offer/{quote(reference, safe='')}")
        except UpstreamTimeoutError:
            raise
        except UpstreamError as exc:
            logger.warning(
                "Direct lookup of %s failed (HTTP %s), scanning listing",
                reference,
                exc.status_code,
                extra={"reference": reference, "status_code": exc.status_code},
            )
            return await self.find_offer_in_listing(reference)

        offer = self._unwrap_offer(payload)
        if offer is not None and self._is_complete(offer):
            return offer

        logger.info(
            "Incomplete data from /offer/%s, scanning listing",
            reference,
            extra={"reference": reference},
        )
        return await self.find_offer_in_listing(reference)

    async def find_offer_in_listing(self, reference: str) -> Optional[Dict[str, Any]]:
        """Scan listing pages in order; first match wins, None when exhausted.

        Errors (timeouts and cancellation included) propagate and stop the scan:
        an interrupted scan is not a "not found".
        """
        reference = str(reference)
        first_page = await self.get_offers(page=1)
        offer = _matches_reference(first_page.offers, reference)
        if offer is not None:
            logger.info("Offer %s found in listing", reference, extra={"reference": reference, "page": 1})
            return offer

        for page in range(2, first_page.last_page + 1):
            page_data = await self.get_offers(page=page)
            offer = _matches_reference(page_data.offers, reference)
            if offer is not None:
                logger.info(
                    "Offer %s found in listing page %d",
                    reference,
                    page,
                    extra={"reference": reference, "page": page},
                )
                return offer
            if not page_data.offers:
                break

        logger.info("Offer %s not found in listing", reference, extra={"reference": reference})
        return None

    @staticmethod
    def _unwrap_offer(payload: Any) -> Optional[Dict[str, Any]]:
        if not isinstance(payload, dict):
            return None
        candidate = payload.get("offer") or payload.get("featured") or payload
        return candidate if isinstance(candidate, dict) else None

    @staticmethod
    def _is_complete(offer: Dict[str, Any]) -> bool:
        return bool(offer.get("title")) and bool(offer.get("features") or offer.get("address"))

    async def aclose(self) -> None:
        """Close the underlying HTTP connection pool."""
        await self._client.aclose()

    async def __aenter__(self) -> "EmblematicClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()
