"""Data normalization utilities for price, availability and slug parsing."""

import re
import unicodedata
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from urllib.parse import urlsplit

# Order matters: negative phrases must be checked before positive ones,
# "non disponible" contains "disponible".
NEGATIVE_AVAILABILITY = [
    "out of stock",
    "outofstock",
    "sold out",
    "soldout",
    "rupture",
    "epuise",
    "indisponible",
    "unavailable",
    "hors stock",
    "non disponible",
    "plus disponible",
]

POSITIVE_AVAILABILITY = [
    "in stock",
    "instock",
    "en stock",
    "stock",
    "available",
    "disponible",
]

IN_STOCK = "in_stock"
OUT_OF_STOCK = "out_of_stock"
UNKNOWN = "unknown"

_FREE_PATTERN = re.compile(r"gratuit|free|offert", re.IGNORECASE)
_NUMBER_PATTERN = re.compile(r"^-?(?:\d+\.?\d*|\.\d+)")
_SCHEME_PATTERN = re.compile(r"^[a-z][a-z0-9+.\-]*://", re.IGNORECASE)
_FILE_EXTENSION_PATTERN = re.compile(
    r"\.(?:html?|php|aspx?|jsp|jpe?g|png|webp|gif)$", re.IGNORECASE
)


def normalize_text(value: Optional[str]) -> str:
    """Decompose, strip diacritics and lowercase.

    "Électroménager" and "electromenager" normalize to the same string.
    """
    if not value:
        return ""
    decomposed = unicodedata.normalize("NFD", value)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.lower()


def normalize_query(query: Optional[str]) -> str:
    """Normalize a user query for cache keys and comparisons."""
    return normalize_text((query or "").strip())


def _looks_like_path(text: str) -> bool:
    # Titles such as "AC/DC" keep their slash-separated parts.
    if _SCHEME_PATTERN.match(text) or text.startswith("/"):
        return True
    if "/" not in text or re.search(r"\s", text):
        return False
    return bool(_FILE_EXTENSION_PATTERN.search(re.split(r"[?#]", text)[0]))


def slugify(value: Optional[str]) -> str:
    """Build a cross-merchant grouping key from a title or URL.

    URL-like input is reduced to its last path segment with the query,
    fragment and file extension removed, so "/fr/iphone-15-pro.html" and
    "iPhone 15 Pro" share a key. Idempotent.
    """
    if not value:
        return ""

    text = value.strip()
    if _looks_like_path(text):
        path = urlsplit(text).path if _SCHEME_PATTERN.match(text) else re.split(r"[?#]", text)[0]
        segments = [segment for segment in path.split("/") if segment]
        text = segments[-1] if segments else ""

    text = _FILE_EXTENSION_PATTERN.sub("", text)
    text = text.replace("_", " ")
    text = normalize_text(text)
    text = re.sub(r"[^a-z0-9]+", "-", text)
    return text.strip("-")


class PriceNormalizer:
    """Price parsing utilities for Moroccan merchant listings.

    Comma is treated as the decimal separator; when several dots remain
    only the last one is kept as the decimal point.
    """

    @staticmethod
    def parse_price(raw: Optional[str]) -> Optional[Decimal]:
        """Parse a price string.

        Handles formats such as:
        - "1 234,00 DH" -> 1234.00
        - "12 499 MAD" -> 12499
        - "1.299,90" -> 1299.90

        Returns:
            Decimal price value, or None if no finite number is found
        """
        if raw is None:
            return None

        cleaned = re.sub(r"[^0-9,.\-]", "", str(raw))
        cleaned = cleaned.replace(",", ".")
        if cleaned.count(".") > 1:
            head, _, tail = cleaned.rpartition(".")
            cleaned = head.replace(".", "") + "." + tail

        match = _NUMBER_PATTERN.match(cleaned)
        if not match:
            return None

        try:
            value = Decimal(match.group(0))
        except InvalidOperation:
            return None

        if not value.is_finite():
            return None
        return value

    @classmethod
    def parse_shipping_fee(cls, raw: Optional[str]) -> Optional[Decimal]:
        """Parse a shipping fee string; "Livraison gratuite" maps to 0."""
        value = cls.parse_price(raw)
        if value is not None:
            return value
        if raw and _FREE_PATTERN.search(normalize_text(raw)):
            return Decimal("0")
        return None

    @classmethod
    def coerce(cls, value: Any) -> Optional[Decimal]:
        """Coerce an API value (number, string or {"value": ...}) to Decimal."""
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float, Decimal)):
            number = Decimal(str(value))
            return number if number.is_finite() else None
        if isinstance(value, str):
            return cls.parse_price(value)
        if isinstance(value, dict):
            return cls.coerce(value.get("value"))
        return None


class AvailabilityClassifier:
    """Map free-text stock phrases to in_stock / out_of_stock / unknown."""

    @staticmethod
    def classify(text: Optional[str]) -> str:
        if not text:
            return UNKNOWN

        normalized = normalize_text(text)
        normalized = re.sub(r"[_\-]+", " ", normalized)

        for fragment in NEGATIVE_AVAILABILITY:
            if fragment in normalized:
                return OUT_OF_STOCK

        for fragment in POSITIVE_AVAILABILITY:
            if fragment in normalized:
                return IN_STOCK

        return UNKNOWN


def parse_price(raw: Optional[str]) -> Optional[Decimal]:
    return PriceNormalizer.parse_price(raw)


def parse_shipping_fee(raw: Optional[str]) -> Optional[Decimal]:
    return PriceNormalizer.parse_shipping_fee(raw)


def parse_availability(text: Optional[str]) -> str:
    return AvailabilityClassifier.classify(text)

