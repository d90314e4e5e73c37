# Overview: Commit notifications for the surrounding persistence/display layer.

"""
Each signal is sent once, after the commit that produced the record.

    sender        the committed record (Sale, ReturnTransaction,
                  HoldTransaction or CreditAdjustment)
    stock_deltas  {product_id: Decimal} of sellable-stock changes already
                  applied by the step (empty for credit adjustments)
"""

from __future__ import annotations

from blinker import Namespace


_signals = Namespace()

sale_completed = _signals.signal("sale-completed")
return_processed = _signals.signal("return-processed")
hold_created = _signals.signal("hold-created")
hold_resumed = _signals.signal("hold-resumed")
hold_voided = _signals.signal("hold-voided")
credit_adjusted = _signals.signal("credit-adjusted")

ALL_SIGNALS = (
    sale_completed,
    return_processed,
    hold_created,
    hold_resumed,
    hold_voided,
    credit_adjusted,
)


def connect_logging(app) -> None:
    """Log every engine commit through the app logger."""

    def _make_listener(signal_name: str):
        def _listener(sender, **extra):
            deltas = extra.get("stock_deltas") or {}
            app.logger.info(
                "%s: %s id=%s stock_deltas=%s",
                signal_name,
                type(sender).__name__,
                getattr(sender, "id", None),
                {pid: str(delta) for pid, delta in deltas.items()},
            )
        return _listener

    for signal in ALL_SIGNALS:
        # weak=False: the closures would otherwise be collected immediately
        signal.connect(_make_listener(signal.name), weak=False)
