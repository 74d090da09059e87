"""Codec for the annotation stored in a paella's ``notes`` column.

A paella row has a single nullable text column for free-form remarks. The
deposit and the final price of the order live in that same column, stored as
a small JSON object::

    {"notes": "Sin gluten", "deposit": 10, "price": null}

Older rows were written before that format existed and hold plain text such
as ``"fianza: 15, precio 42,50"``. Decoding such text never fails: the whole
text is kept as the free-text part and the amounts are recovered from the
keywords listed in ``LEGACY_KEYWORDS`` when present.
"""

import json
import math
import re
from dataclasses import dataclass
from typing import Mapping, Sequence


# Logical field -> keywords that introduce its amount in legacy free text.
LEGACY_KEYWORDS: dict[str, tuple[str, ...]] = {
    "deposit": ("fianza",),
    "price": ("precio",),
}


@dataclass(frozen=True)
class OrderAnnotation:
    """Decoded content of a paella ``notes`` column.

    Attributes:
        notes: Free-text remarks entered by staff (may be empty).
        deposit: Refundable deposit amount, or None when unset. ``0`` means
            the deposit was waived and is not the same as None.
        price: Final price, or None when the order has not been priced yet.
    """

    notes: str = ""
    deposit: float | None = None
    price: float | None = None


# ---- Parse result ----
@dataclass(frozen=True)
class Structured:
    """The stored text is a JSON object in the current format."""

    fields: dict


@dataclass(frozen=True)
class Unstructured:
    """The stored text is legacy free text (or anything else that is not a JSON object)."""

    raw: str


def try_parse(text: str) -> Structured | Unstructured:
    """Classify stored text as the current JSON format or legacy text.

    Only a JSON object counts as structured. A bare JSON number, string or
    list is legacy text that happens to be valid JSON, so it is kept whole.
    """
    try:
        parsed = json.loads(text)
    except (ValueError, RecursionError):
        return Unstructured(text)
    if not isinstance(parsed, dict):
        return Unstructured(text)
    return Structured(parsed)


def _normalize(number: float) -> float | int | None:
    if not math.isfinite(number):
        return None
    if float(number).is_integer():
        return int(number)
    return number


def coerce_amount(value) -> float | int | None:
    """Turn a loosely typed amount into a number or None.

    Numbers pass through, numeric-looking strings are converted, anything
    else (None, booleans, empty or non-numeric strings, nested values)
    becomes None.

    Args:
        value: Raw value read from a parsed payload.

    Returns:
        The amount (integral values as ``int``) or None when unset/invalid.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return _normalize(float(value)) if isinstance(value, float) else value
    if isinstance(value, str) and value.strip():
        try:
            return _normalize(float(value.strip()))
        except ValueError:
            return None
    return None


def _legacy_amount(text: str, keywords: Sequence[str]) -> float | int | None:
    for keyword in keywords:
        match = re.search(rf"{re.escape(keyword)}[:\s]*([0-9.,]+)", text, re.IGNORECASE)
        if match:
            return coerce_amount(match.group(1).replace(",", "."))
    return None


def _keywords(value) -> tuple[str, ...]:
    # a bare string is one keyword, not a sequence of letters
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


class NotesCodec:
    """Bidirectional mapping between ``OrderAnnotation`` and stored text.

    The codec is stateless apart from its keyword table, so one instance can
    be shared freely.

    Args:
        legacy_keywords: Optional table mapping ``"deposit"`` and ``"price"``
            to the keywords recognised in legacy text. Defaults to
            ``LEGACY_KEYWORDS``.
    """

    def __init__(self, legacy_keywords: Mapping[str, Sequence[str]] | None = None):
        table = legacy_keywords if legacy_keywords is not None else LEGACY_KEYWORDS
        self.legacy_keywords = {field: _keywords(table.get(field)) for field in ("deposit", "price")}

    def encode(self, annotation: OrderAnnotation) -> str:
        """Serialize an annotation to the JSON text stored in ``notes``.

        Unset amounts are written as ``null`` so they stay distinct from 0.

        Args:
            annotation: The annotation to store.

        Returns:
            str: A JSON object with exactly the keys notes, deposit and price.
        """
        payload = {
            "notes": annotation.notes or "",
            "deposit": coerce_amount(annotation.deposit),
            "price": coerce_amount(annotation.price),
        }
        return json.dumps(payload, ensure_ascii=False)

    def decode(self, text: str | None) -> OrderAnnotation:
        """Read an annotation back from stored text. Never raises.

        Args:
            text: Content of the ``notes`` column, possibly None or empty.

        Returns:
            OrderAnnotation: Best-effort annotation. For legacy text the
            whole input is kept as ``notes``.
        """
        if not text:
            return OrderAnnotation()

        result = try_parse(text)
        if isinstance(result, Structured):
            notes = result.fields.get("notes")
            return OrderAnnotation(
                notes=notes if isinstance(notes, str) else "",
                deposit=coerce_amount(result.fields.get("deposit")),
                price=coerce_amount(result.fields.get("price")),
            )

        return OrderAnnotation(
            notes=result.raw,
            deposit=_legacy_amount(result.raw, self.legacy_keywords["deposit"]),
            price=_legacy_amount(result.raw, self.legacy_keywords["price"]),
        )


default_codec = NotesCodec()


def encode(annotation: OrderAnnotation) -> str:
    """Encode with the default keyword table."""
    return default_codec.encode(annotation)


def decode(text: str | None) -> OrderAnnotation:
    """Decode with the default keyword table."""
    return default_codec.decode(text)
