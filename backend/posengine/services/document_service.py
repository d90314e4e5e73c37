# Overview: Human-readable document numbers for sales, holds and returns.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db


def next_document_number(model, prefix: str) -> str:
    """
    Next sequential number for `model`, e.g. "S-000042".

    Writes are serialized, so max(id) + 1 cannot be handed out twice.
    """
    last_id = db.session.query(func.max(model.id)).scalar() or 0
    return f"{prefix}-{str(last_id + 1).zfill(6)}"
