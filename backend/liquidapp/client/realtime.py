"""Client side of the claim push channel."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Sequence

logger = logging.getLogger(__name__)

RETRY_DELAYS = (1, 5, 15)  # seconds


def claim_events_url(base_url: str, claim_id: str) -> str:
    """Map the API base URL (http/https) to the claim's WebSocket endpoint."""
    base = base_url.rstrip("/")
    if base.startswith("https://"):
        base = "wss://" + base[len("https://"):]
    elif base.startswith("http://"):
        base = "ws://" + base[len("http://"):]
    return f"{base}/api/v1/siniestros/{claim_id}/eventos"


async def subscribe_claim_events(
    base_url: str,
    claim_id: str,
    retry_delays: Sequence[float] = RETRY_DELAYS,
) -> AsyncIterator[dict[str, Any]]:
    """Yield decoded events for *claim_id* until the server closes the stream.

    Lost connections are retried with the given delays; events published
    while disconnected are not replayed.
    """
    import websockets

    url = claim_events_url(base_url, claim_id)
    retry_count = 0

    while True:
        try:
            async with websockets.connect(url) as ws:
                retry_count = 0
                logger.info("Subscribed to events for claim %s", claim_id)
                async for raw in ws:
                    try:
                        event = json.loads(raw)
                    except json.JSONDecodeError:
                        logger.warning("Dropping undecodable event on claim %s", claim_id)
                        continue
                    if isinstance(event, dict):
                        yield event
            return
        except (websockets.ConnectionClosed, websockets.WebSocketException, OSError) as exc:
            if retry_count >= len(retry_delays):
                logger.error("Event stream for claim %s lost after %d retries: %s",
                             claim_id, len(retry_delays), exc)
                raise
            delay = retry_delays[retry_count]
            retry_count += 1
            logger.warning(
                "Event stream for claim %s lost (%s), reconnecting in %ss (attempt %d/%d)",
                claim_id, exc, delay, retry_count, len(retry_delays),
            )
            await asyncio.sleep(delay)
