import logging
import threading
from decimal import Decimal

from posengine.extensions import db
from posengine.models import Product
from posengine.services import cart_service, hold_service
from posengine.services import hold_monitor as hold_monitor_module
from posengine.services.concurrency import run_serialized
from posengine.services.hold_monitor import HoldMonitor


def _park(product, minutes, now):
    cart = cart_service.open_cart()
    cart_service.add_line(cart.id, product.id)
    return hold_service.create_hold(cart.id, duration_minutes=minutes, now=now)


def test_tick_publishes_urgent_summary(app, db_session, make_product, now, caplog):
    product = make_product(stock="10")
    soon = _park(product, 2, now)
    _park(product, 30, now)
    monitor = HoldMonitor(app, interval=60)

    with caplog.at_level(logging.INFO):
        summary = monitor.tick(now=now)

    assert [item["hold_id"] for item in summary.display] == [soon.id]
    assert summary.display[0]["seconds_remaining"] == 120
    assert monitor.latest is summary
    assert "Urgent holds: 1 shown, 0 more" in caplog.text


def test_tick_is_read_only(app, db_session, make_product, now):
    product = make_product(stock="10")
    hold = _park(product, 1, now)
    monitor = HoldMonitor(app, interval=60)

    later = now.replace(minute=5)
    assert monitor.tick(now=later).total == 0

    db_session.expire_all()
    assert hold_service.get_hold(hold.id).status == "ACTIVE"


def test_tick_waits_for_open_write(app, db_session, make_product):
    product = make_product(stock="5")
    monitor = HoldMonitor(app, interval=60)
    ticker = threading.Thread(target=monitor.tick)
    blocked = []

    def _write():
        row = db.session.get(Product, product.id)
        row.stock = Decimal("1")
        db.session.flush()
        ticker.start()
        ticker.join(0.2)
        blocked.append(ticker.is_alive())
        db.session.commit()

    run_serialized(_write)
    ticker.join(2)

    assert blocked == [True]
    assert not ticker.is_alive()
    db_session.expire_all()
    assert db_session.get(Product, product.id).stock == Decimal("1")


def test_loop_survives_failed_cycle(app, monkeypatch, caplog):
    calls = []
    recovered = threading.Event()

    def _flaky(now=None):
        calls.append(now)
        if len(calls) == 1:
            raise RuntimeError("database went away")
        recovered.set()
        return hold_service.UrgentHoldSummary()

    monkeypatch.setattr(hold_monitor_module, "urgent_holds", _flaky)
    monitor = HoldMonitor(app, interval=0.01)

    with caplog.at_level(logging.ERROR):
        monitor.start()
        try:
            assert recovered.wait(2)
            assert monitor.running
        finally:
            monitor.stop(timeout=2)

    assert not monitor.running
    assert "Hold monitor cycle failed" in caplog.text


def test_monitor_registered_but_idle_in_tests(app):
    monitor = app.extensions["hold_monitor"]
    assert isinstance(monitor, HoldMonitor)
    assert not monitor.running
