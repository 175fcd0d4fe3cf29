"""Vision analysis of one evidence image.

Sends the fixed domain-expert prompt pair plus one image URL to the vision
model and returns the raw completion text. Parsing lives in
modules.analysis_parser so the raw text can be stored for audit even when it
turns out to be unusable.
"""
from __future__ import annotations

import logging

import httpx

from liquidapp.config import settings
from liquidapp.modules.llm_client import Completion, chat_completion

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """Eres un perito experto en liquidación de siniestros automotrices con 20 años de experiencia.
Analizas imágenes de vehículos dañados para:
1. ANTIFRAUDE: Detectar inconsistencias, manipulación digital, daños preexistentes o escenificados
2. TRIAJE: Clasificar la severidad del daño (leve/moderado/grave/perdida_total)
3. COSTOS: Estimar rangos de costo de reparación en pesos chilenos (CLP)

Responde SIEMPRE en formato JSON válido con la estructura exacta especificada.
Sé conservador en las estimaciones de fraude (solo marca alto/critico si hay evidencia clara).
Los costos deben reflejar el mercado chileno actual (talleres certificados)."""

USER_PROMPT = """Analiza esta imagen de un vehículo siniestrado y responde con el siguiente JSON exacto:

{
  "antifraude": {
    "score": <número 0.0-1.0, donde 0=sin fraude, 1=fraude evidente>,
    "nivel": <"bajo"|"medio"|"alto"|"critico">,
    "indicadores": [<lista de indicadores detectados, vacía si no hay>],
    "justificacion": "<explicación breve de la evaluación antifraude>"
  },
  "triage": {
    "severidad": <"leve"|"moderado"|"grave"|"perdida_total">,
    "partes_danadas": [<lista de partes dañadas en español, ej: "parachoque_delantero", "capot", "faro_derecho">],
    "descripcion": "<descripción técnica de los daños observados>"
  },
  "costos": {
    "min": <costo mínimo en CLP como número entero>,
    "max": <costo máximo en CLP como número entero>,
    "desglose": [
      {
        "parte": "<nombre de la parte>",
        "costo_min": <número entero CLP>,
        "costo_max": <número entero CLP>
      }
    ]
  }
}

IMPORTANTE: Responde SOLO con el JSON, sin texto adicional."""


def build_messages(image_url: str) -> list[dict]:
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {
            "role": "user",
            "content": [
                {"type": "image_url", "image_url": {"url": image_url, "detail": "high"}},
                {"type": "text", "text": USER_PROMPT},
            ],
        },
    ]


class VisionAnalysisClient:
    """Thin wrapper binding the analysis prompts to a configured vision model."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        max_tokens: int | None = None,
        http_client: httpx.Client | None = None,
    ):
        self.api_key = api_key or settings.VISION_API_KEY
        self.model = model or settings.VISION_MODEL
        self.base_url = base_url or settings.VISION_API_BASE_URL
        self.max_tokens = max_tokens or settings.VISION_MAX_TOKENS
        self.http_client = http_client

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def analyze_image(self, image_url: str) -> Completion:
        """Return the model's raw answer for *image_url*.

        Raises ConfigurationError when no key is set and ExternalCallError
        when the provider call fails.
        """
        logger.info("Requesting vision analysis (model=%s)", self.model)
        return chat_completion(
            build_messages(image_url),
            model=self.model,
            max_tokens=self.max_tokens,
            api_key=self.api_key,
            base_url=self.base_url,
            response_format={"type": "json_object"},
            http_client=self.http_client,
        )
