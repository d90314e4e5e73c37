# Overview: Flask API routes for held transactions; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services import hold_service
from ..time_utils import utcnow
from ..validation import EngineError

holds_bp = Blueprint("holds", __name__, url_prefix="/api/holds")


@holds_bp.post("")
def create_hold_route():
    """
    Park a cart.

    Request body:
    {
        "cart_id": 1,
        "duration_minutes": 30,   (optional, defaults to HOLD_DEFAULT_DURATION_MINUTES)
        "note": "Back after lunch",
        "cashier_id": 1
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        cart_id = data.get("cart_id")
        if not isinstance(cart_id, int):
            return jsonify({"error": "cart_id required", "reason": "VALIDATION_ERROR", "details": {}}), 400
        hold = hold_service.create_hold(
            cart_id,
            duration_minutes=data.get("duration_minutes"),
            note=data.get("note"),
            cashier_id=data.get("cashier_id"),
        )
        return jsonify({"hold": hold_service.hold_view(hold)}), 201
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create hold")
        return jsonify({"error": "Internal server error"}), 500


@holds_bp.get("")
def list_holds_route():
    try:
        now = utcnow()
        holds = hold_service.list_active_holds(search=request.args.get("search"))
        return jsonify({"holds": [hold_service.hold_view(h, now) for h in holds]}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list holds")
        return jsonify({"error": "Internal server error"}), 500


@holds_bp.get("/urgent")
def urgent_holds_route():
    """Latest monitor snapshot when the sweep is running, otherwise computed on request."""
    try:
        monitor = current_app.extensions.get("hold_monitor")
        summary = monitor.latest if monitor and monitor.running else hold_service.urgent_holds()
        return jsonify(summary.to_dict()), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to compute urgent holds")
        return jsonify({"error": "Internal server error"}), 500


@holds_bp.post("/<int:hold_id>/resume")
def resume_hold_route(hold_id: int):
    try:
        data = request.get_json(silent=True) or {}
        cart_id = data.get("cart_id")
        if not isinstance(cart_id, int):
            return jsonify({"error": "cart_id required", "reason": "VALIDATION_ERROR", "details": {}}), 400
        hold = hold_service.resume_hold(hold_id, cart_id, actor_user_id=data.get("actor_user_id"))
        return jsonify({"hold": hold_service.hold_view(hold)}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to resume hold")
        return jsonify({"error": "Internal server error"}), 500


@holds_bp.post("/<int:hold_id>/void")
def void_hold_route(hold_id: int):
    try:
        data = request.get_json(silent=True) or {}
        hold = hold_service.void_hold(hold_id, actor_user_id=data.get("actor_user_id"))
        return jsonify({"hold": hold_service.hold_view(hold)}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to void hold")
        return jsonify({"error": "Internal server error"}), 500
