# Overview: Append-only audit events written alongside each commit.

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Optional

from ..extensions import db
from ..models import MasterLedgerEvent
"""
Master Ledger Invariants

- Append-only audit log for cross-cutting domain events.
- No domain/business logic in the master ledger itself.
- Events are written inside the same DB transaction as the domain event they record.
- occurred_at is business time; created_at is system time (DB default).
"""


def _json_default(value):
    if isinstance(value, Decimal):
        return str(value)
    raise TypeError(f"Cannot serialize {type(value).__name__}")


def append_ledger_event(
    *,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> MasterLedgerEvent:
    """
    Append-only master ledger event.

    - No domain logic here.
    - No deletes/updates of existing events.
    - Caller owns the commit.
    """
    ev = MasterLedgerEvent(
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        occurred_at=occurred_at,  # if None, db default applies
        note=note,
        payload=json.dumps(payload, default=_json_default, sort_keys=True) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_ledger_events(event_category: str | None = None, limit: int = 100) -> list[MasterLedgerEvent]:
    query = db.session.query(MasterLedgerEvent)
    if event_category:
        query = query.filter_by(event_category=event_category)
    return query.order_by(MasterLedgerEvent.id.desc()).limit(limit).all()
