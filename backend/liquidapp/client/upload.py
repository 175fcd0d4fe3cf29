"""Upload one captured image, record it, and hand it to the analysis pipeline."""
from __future__ import annotations

import asyncio
import logging
import re
import secrets
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import httpx

from liquidapp.client.gateway import BackendGateway
from liquidapp.client.state import EvidenceWithAnalysis, NoResult, PENDING, Resolved
from liquidapp.errors import MetadataPersistError, SignedUrlError, StorageWriteError

logger = logging.getLogger(__name__)

DEFAULT_SIGNED_URL_TTL = 3600

_EXT_RE = re.compile(r"^[A-Za-z0-9]{1,8}$")


@dataclass(frozen=True)
class Geolocation:
    lat: float
    lng: float
    accuracy: Optional[float] = None


@dataclass(frozen=True)
class UploadOptions:
    claim_id: str
    description: Optional[str] = None
    geolocation: Optional[Geolocation] = None
    order: int = 0


def build_object_key(claim_id: str, filename: str, now_ms: int | None = None) -> str:
    """``{claim_id}/{epoch_ms}-{random}.{ext}``; the random part keeps
    same-millisecond captures apart."""
    ext = filename.rsplit(".", 1)[-1] if "." in filename else ""
    if not _EXT_RE.match(ext):
        ext = "jpg"
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{claim_id}/{now_ms}-{secrets.token_hex(4)}.{ext.lower()}"


class EvidenceUploadCoordinator:
    def __init__(
        self,
        gateway: BackendGateway,
        signed_url_ttl: int = DEFAULT_SIGNED_URL_TTL,
        on_queue_failed: Callable[[str, str], None] | None = None,
    ):
        self.gateway = gateway
        self.on_queue_failed = on_queue_failed
        self.signed_url_ttl = signed_url_ttl
        self._inflight: dict[str, asyncio.Task] = {}

    async def upload_and_analyze(
        self,
        data: bytes,
        filename: str,
        content_type: str,
        options: UploadOptions,
        queued: bool = False,
    ) -> EvidenceWithAnalysis:
        """Run the four upload steps in order.

        Raises StorageWriteError, MetadataPersistError or SignedUrlError
        naming the step that failed. In synchronous mode an analysis failure
        is returned as a ``NoResult`` slot rather than raised.
        """
        key = build_object_key(options.claim_id, filename)

        try:
            await self.gateway.upload_object(key, data, content_type)
        except (httpx.HTTPError, ValueError) as exc:
            raise StorageWriteError(f"No se pudo subir la imagen: {exc}") from exc

        fields: dict[str, Any] = {
            "siniestro_id": options.claim_id,
            "storage_path": key,
            "nombre_archivo": filename,
            "tipo_mime": content_type,
            "tamano_bytes": len(data),
            "descripcion": options.description,
            "orden": options.order,
        }
        if options.geolocation is not None:
            fields["latitud"] = options.geolocation.lat
            fields["longitud"] = options.geolocation.lng
            fields["precision_metros"] = options.geolocation.accuracy
        try:
            evidence = await self.gateway.insert_evidence(fields)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Evidence row insert failed; object %s left orphaned", key)
            raise MetadataPersistError(f"No se pudo registrar la evidencia: {exc}") from exc

        try:
            signed_url = await self.gateway.create_signed_url(key, self.signed_url_ttl)
        except (httpx.HTTPError, ValueError) as exc:
            raise SignedUrlError(f"No se pudo generar la URL firmada: {exc}") from exc
        if not signed_url:
            raise SignedUrlError("No se pudo generar la URL firmada para el análisis")

        payload = {
            "evidencia_id": evidence["id"],
            "imagen_url": signed_url,
            "siniestro_id": options.claim_id,
        }
        if queued:
            self.dispatch_queued(payload)
            return EvidenceWithAnalysis(evidence=evidence, analyzing=True, analysis=PENDING)

        return EvidenceWithAnalysis(
            evidence=evidence, analyzing=False, analysis=await self._analyze_sync(payload)
        )

    async def _analyze_sync(self, payload: dict[str, str]):
        try:
            body = await self.gateway.analyze(payload)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Analysis of evidence %s failed: %s", payload["evidencia_id"], exc)
            return NoResult(reason=str(exc))
        analysis = body.get("analisis")
        if not body.get("success") or not analysis:
            return NoResult(reason=body.get("error"))
        return Resolved(analysis)

    # -- queued dispatch -------------------------------------------------------

    def dispatch_queued(self, payload: dict[str, str]) -> asyncio.Task:
        """Fire the queue request in the background.

        A newer dispatch for the same evidence cancels the older in-flight
        request. The backend is not told; an already-running server analysis
        still completes and publishes.
        """
        evidence_id = payload["evidencia_id"]
        previous = self._inflight.get(evidence_id)
        if previous is not None and not previous.done():
            logger.info("Superseding queued analysis for evidence %s", evidence_id)
            previous.cancel()

        task = asyncio.get_running_loop().create_task(self._send_queued(payload))
        self._inflight[evidence_id] = task
        task.add_done_callback(lambda t, eid=evidence_id: self._forget(eid, t))
        return task

    def _forget(self, evidence_id: str, task: asyncio.Task) -> None:
        if self._inflight.get(evidence_id) is task:
            del self._inflight[evidence_id]

    async def _send_queued(self, payload: dict[str, str]) -> bool:
        try:
            await self.gateway.queue_analysis(payload)
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Queue request for evidence %s failed: %s", payload["evidencia_id"], exc)
            if self.on_queue_failed is not None:
                self.on_queue_failed(payload["evidencia_id"], str(exc))
            return False
        logger.info("Queued analysis for evidence %s", payload["evidencia_id"])
        return True

    def inflight(self, evidence_id: str) -> asyncio.Task | None:
        return self._inflight.get(evidence_id)

    async def aclose(self) -> None:
        tasks = list(self._inflight.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._inflight.clear()
