"""Chilean RUT (national tax id) check-digit validation.

The check digit is ``11 - (weighted sum mod 11)`` over the body digits read
right to left with weights cycling 2..7, mapped 11 → "0" and 10 → "K".
Stored client records use the normalized "XXXXXXXX-X" form.
"""
from __future__ import annotations


def _clean(rut: str) -> str:
    return rut.replace(".", "").replace("-", "").strip().upper()


def compute_check_digit(body: str) -> str:
    total = 0
    weight = 2
    for digit in reversed(body):
        total += int(digit) * weight
        weight = 2 if weight == 7 else weight + 1
    remainder = 11 - (total % 11)
    if remainder == 11:
        return "0"
    if remainder == 10:
        return "K"
    return str(remainder)


def validate_rut(rut: str | None) -> bool:
    if not rut:
        return False
    cleaned = _clean(rut)
    if len(cleaned) < 2:
        return False
    body, dv = cleaned[:-1], cleaned[-1]
    if not (body.isascii() and body.isdigit()):
        return False
    return compute_check_digit(body) == dv


def normalize_rut(rut: str) -> str:
    """"12.345.678-5" → "12345678-5" (no dots, hyphen before the check digit)."""
    cleaned = _clean(rut)
    return f"{cleaned[:-1]}-{cleaned[-1]}"
