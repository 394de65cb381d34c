"""Shape-tolerant field extractors for raw Emblematic offers.

The CRM does not keep a stable JSON shape between endpoints (or even between
offers of the same response):
- address: object OR one-element array of that object
- address.city / zone / region / country: each independently object OR array
- features: a bare number OR an object of named arrays
  (prices, areas, more_features, qualities) holding {name, value} pairs
- images / videos: string arrays, descriptor arrays, a single descriptor,
  a single string, or absent
- description: plain string OR {"es": ..., "en": ...}

Every function here is total: malformed input degrades to None / "" / [] / False,
nothing is ever raised. The mapper relies on that to stay total itself.
"""
import math
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

Number = Union[int, float]

PRIMARY_LANGUAGE = "es"
SECONDARY_LANGUAGE = "en"

IMAGE_URL_FIELDS = ("thumb_800_600", "url", "original")
VIDEO_URL_FIELDS = ("url", "video_url", "src", "link")

BOOLEAN_FEATURE_SECTIONS = ("more_features", "qualities")

_NUMERIC_STRING = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def first_of(value: Any) -> Optional[Dict[str, Any]]:
    """Resolve a OneOrMany[object]: first element of a list, the dict itself, else None."""
    if isinstance(value, list):
        if value and isinstance(value[0], dict):
            return value[0]
        return None
    if isinstance(value, dict):
        return value
    return None


def _finite(number: float) -> Optional[Number]:
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def extract_numeric(value: Any) -> Optional[Number]:
    """Return a number for numbers and numeric strings, None for anything else."""
    # bool é subclasse de int
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return _finite(value)
    if isinstance(value, str):
        candidate = value.strip()
        if not _NUMERIC_STRING.match(candidate):
            return None
        try:
            return _finite(float(candidate))
        except (OverflowError, ValueError):
            return None
    return None


def _named_entries(named: Any) -> Iterable[Dict[str, Any]]:
    if not isinstance(named, list):
        return ()
    return (entry for entry in named if isinstance(entry, dict))


def find_named_entry(named: Any, target_name: str) -> Optional[Dict[str, Any]]:
    """First {name, value} record whose name is exactly target_name."""
    for entry in _named_entries(named):
        if entry.get("name") == target_name:
            return entry
    return None


def extract_named_value(named: Any, target_name: str) -> Optional[Number]:
    """Numeric value of the first entry named exactly target_name."""
    entry = find_named_entry(named, target_name)
    if entry is None:
        return None
    return extract_numeric(entry.get("value"))


def extract_first_named_value(named: Any, names: Sequence[str]) -> Optional[Number]:
    """Try each synonym in order; a zero falls through to the next one.

    The last synonym is returned as found, so a single-label lookup keeps its 0
    (ground floor).
    """
    value = None
    for name in names:
        value = extract_named_value(named, name)
        if value:
            return value
    return value


def extract_localized_text(value: Any) -> str:
    """Spanish text of a multilingual field, English as fallback, "" otherwise."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        for language in (PRIMARY_LANGUAGE, SECONDARY_LANGUAGE):
            text = value.get(language)
            if isinstance(text, str) and text:
                return text
    return ""


def extract_address_component(address: Any, component_key: str) -> str:
    """Name of address.<component_key>, whatever the wrapping at each level."""
    resolved = first_of(address)
    if resolved is None:
        return ""
    component = first_of(resolved.get(component_key))
    if component is None:
        return ""
    name = component.get("name")
    return name if isinstance(name, str) else ""


def _collect_urls(items: Any, fields: Sequence[str]) -> List[str]:
    if items is None:
        return []
    if not isinstance(items, list):
        items = [items]

    urls: List[str] = []
    for item in items:
        if isinstance(item, str):
            url = item
        elif isinstance(item, dict):
            url = next(
                (item[f] for f in fields if isinstance(item.get(f), str) and item[f]),
                "",
            )
        else:
            continue
        if url:
            urls.append(url)
    return urls


def extract_image_urls(images: Any) -> List[str]:
    """Ordered image URLs, preferring the 800x600 thumbnail over the original."""
    return _collect_urls(images, IMAGE_URL_FIELDS)


def extract_video_urls(videos: Any) -> List[str]:
    """Ordered video URLs from any of the shapes the CRM sends."""
    return _collect_urls(videos, VIDEO_URL_FIELDS)


def count_videos(videos: Any) -> int:
    """Video count: list length, or the bare number the listing endpoint sends."""
    if isinstance(videos, list):
        return len(videos)
    count = extract_numeric(videos)
    return int(count) if count and count > 0 else 0


def extract_boolean_feature(features: Any, feature_name: str) -> bool:
    """True only when a matching entry's value is strictly True.

    The first section that contains the name decides. "Reported as false" and
    "not reported" both come out as False; the CRM does not let us tell them
    apart and the normalized shape does not try to either.
    """
    if not isinstance(features, dict):
        return False
    for section in BOOLEAN_FEATURE_SECTIONS:
        entry = find_named_entry(features.get(section), feature_name)
        if entry is not None:
            return entry.get("value") is True
    return False


def extract_any_boolean_feature(features: Any, names: Sequence[str]) -> bool:
    return any(extract_boolean_feature(features, name) for name in names)


def as_text(value: Any) -> str:
    """Free-text label passthrough: strings as-is, numbers stringified, else ""."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return ""
    if isinstance(value, (int, float)):
        number = _finite(float(value)) if isinstance(value, float) else value
        return "" if number is None else str(number)
    return ""


def as_optional_text(value: Any) -> Optional[str]:
    text = as_text(value)
    return text or None
