"""Turn the vision model's raw text into a validated analysis.

The model is asked for bare JSON but occasionally wraps it in a markdown code
fence; that fence is stripped. Anything else that is not a JSON object is an
UnparseableResponseError. A JSON object that does not satisfy the schema of
the delivery mode is a SchemaViolationError. Neither case ever yields a
default "clean" result.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any

import pydantic

from liquidapp.errors import SchemaViolationError, UnparseableResponseError
from liquidapp.models.base import DeliveryModeEnum, FraudLevelEnum
from liquidapp.modules.fraud_level import resolve_fraud_level
from liquidapp.schemas.analysis import AnalysisResultSchema, LenientAnalysisResultSchema

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class ParsedAnalysis:
    """Validated analysis plus the resolved fraud level.

    ``raw`` is the decoded JSON exactly as the model produced it; ``result``
    is the schema-validated (and, in lenient mode, defaulted) reading.
    """
    result: AnalysisResultSchema
    fraud_level: FraudLevelEnum
    raw: dict[str, Any]


def decode_json_object(content: str | None) -> dict[str, Any]:
    """Decode *content* as a JSON object or raise UnparseableResponseError."""
    text = (content or "").strip()
    match = _FENCE_RE.match(text)
    if match:
        text = match.group(1)
    if not text:
        raise UnparseableResponseError("La IA devolvió una respuesta vacía")
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.error("Unparseable AI response: %.500s", content)
        raise UnparseableResponseError("Error al procesar la respuesta de la IA") from exc
    if not isinstance(decoded, dict):
        raise UnparseableResponseError("La respuesta de la IA no es un objeto JSON")
    return decoded


def _drop_nulls(value: Any) -> Any:
    """Treat explicit nulls as absent so defaults (or required-field errors) apply."""
    if isinstance(value, dict):
        return {k: _drop_nulls(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_drop_nulls(v) for v in value if v is not None]
    return value


def parse_analysis(content: str | None, mode: DeliveryModeEnum) -> ParsedAnalysis:
    """Parse and validate a raw model answer for the given delivery mode.

    Synchronous delivery is strict: fraud score, severity and cost range must
    be present. Queued delivery substitutes safe zero values for anything
    missing.
    """
    raw = decode_json_object(content)
    schema = (
        LenientAnalysisResultSchema if mode == DeliveryModeEnum.QUEUED else AnalysisResultSchema
    )
    try:
        result = schema.model_validate(_drop_nulls(raw))
    except pydantic.ValidationError as exc:
        fields = ", ".join(
            ".".join(str(p) for p in err["loc"]) for err in exc.errors()
        )
        logger.error("AI response violates analysis schema (%s): %s", mode.value, fields)
        raise SchemaViolationError(
            f"La respuesta de la IA no cumple el esquema esperado: {fields}"
        ) from exc

    level = resolve_fraud_level(result.antifraude.nivel, result.antifraude.score)
    return ParsedAnalysis(result=result, fraud_level=level, raw=raw)
