"""Reclaim storage objects that no evidence row references.

An object is orphaned when the client uploaded it but the evidence insert
failed (or never happened). Objects younger than the grace period are kept:
their evidence row may still be in flight. Evidence rows themselves are never
deleted here; a client-side "remove" only hides them and their analyses keep
feeding the claim rollup.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from liquidapp.modules.storage import LocalObjectStorage

logger = logging.getLogger(__name__)


def find_orphaned_objects(
    db: Session,
    storage: LocalObjectStorage,
    grace: timedelta,
    now: datetime | None = None,
) -> list[str]:
    from liquidapp.models.evidence import Evidence

    now = now or datetime.now(timezone.utc)
    referenced = {path for (path,) in db.query(Evidence.storage_path).all()}
    orphans = []
    for obj in storage.list_objects():
        if obj.key in referenced:
            continue
        if now - obj.modified_at < grace:
            continue
        orphans.append(obj.key)
    return orphans


def sweep_orphaned_objects(
    db: Session,
    storage: LocalObjectStorage,
    grace: timedelta,
    dry_run: bool = False,
    now: datetime | None = None,
) -> dict:
    """Delete unreferenced objects older than *grace*. Returns a summary dict."""
    orphans = find_orphaned_objects(db, storage, grace, now=now)
    if not dry_run:
        for key in orphans:
            storage.delete(key)
    if orphans:
        logger.warning(
            "%s %d orphaned storage object(s)", "Found" if dry_run else "Deleted", len(orphans)
        )
    return {"orphans": orphans, "deleted": 0 if dry_run else len(orphans), "dry_run": dry_run}
