# Overview: Flask API routes for members and the store-credit ledger; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..models.sales import PAYMENT_CASH
from ..services import credit_service, customer_service
from ..time_utils import to_utc_z
from ..validation import EngineError

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.post("")
def register_member_route():
    try:
        data = request.get_json(silent=True) or {}
        customer = customer_service.register_member(
            name=data.get("name") or "",
            phone=data.get("phone"),
            email=data.get("email"),
        )
        return jsonify({"customer": customer.to_dict()}), 201
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to register member")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("")
def search_members_route():
    """Member lookup for the cart's customer picker. Query: search=<name, phone or email>."""
    try:
        members = customer_service.search_members(request.args.get("search", "").strip())
        return jsonify({"customers": [c.to_dict() for c in members]}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to search members")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(customer_id)
        return jsonify({"customer": customer.to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/<int:customer_id>/credit")
def adjust_credit_route(customer_id: int):
    """
    Manual store-credit adjustment.

    Request body:
    {
        "amount_cents": 2000,
        "type": "ADD" | "DEDUCT",
        "reason": "Goodwill",
        "actor_user_id": 1
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        adj = credit_service.adjust_credit(
            customer_id,
            data.get("amount_cents"),
            data.get("type"),
            reason=data.get("reason"),
            actor_user_id=data.get("actor_user_id"),
        )
        return jsonify({"adjustment": adj.to_dict()}), 201
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust store credit")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/<int:customer_id>/payments")
def account_payment_route(customer_id: int):
    try:
        data = request.get_json(silent=True) or {}
        adj = credit_service.record_account_payment(
            customer_id,
            data.get("amount_cents"),
            payment_method=data.get("payment_method") or PAYMENT_CASH,
            actor_user_id=data.get("actor_user_id"),
        )
        return jsonify({"adjustment": adj.to_dict()}), 201
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record account payment")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/ledger")
def credit_ledger_route(customer_id: int):
    try:
        rows = credit_service.get_ledger(customer_id)
        return jsonify({
            "adjustments": [row.to_dict() for row in rows],
            "balance_cents": credit_service.ledger_balance(customer_id),
        }), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load credit ledger")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/credit-due")
def credit_due_route(customer_id: int):
    try:
        rows = credit_service.outstanding_credit_sales(customer_id)
        for row in rows:
            row["credit_due_at"] = to_utc_z(row["credit_due_at"])
        return jsonify({"sales": rows}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load credit due list")
        return jsonify({"error": "Internal server error"}), 500
