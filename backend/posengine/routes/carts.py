# Overview: Flask API routes for the active cart; parses input and returns JSON responses.

"""
Cart API Routes

DESIGN:
- One cart per POS session; every response carries the lines plus totals
  priced fresh from current store settings.
- `credit_term_id` may be passed as a query parameter to preview the
  STORE_CREDIT markup for a given term.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import cart_service, sales_service
from ..validation import EngineError

carts_bp = Blueprint("carts", __name__, url_prefix="/api/carts")


def _cart_payload(cart_id: int, credit_term_id=None) -> dict:
    cart = cart_service.get_cart(cart_id)
    return {
        "cart": cart.to_dict(),
        "customer": cart_service.customer_ref(cart).to_dict(),
        "is_empty": len(cart.lines) == 0,
        "totals": cart_service.get_totals(cart_id, credit_term_id=credit_term_id).to_dict(),
    }


def _term_arg():
    return request.args.get("credit_term_id", type=int)


@carts_bp.post("")
def open_cart_route():
    try:
        data = request.get_json(silent=True) or {}
        kwargs = {"cashier_id": data.get("cashier_id")}
        if data.get("payment_method"):
            kwargs["payment_method"] = data["payment_method"]
        cart = cart_service.open_cart(**kwargs)
        return jsonify(_cart_payload(cart.id)), 201
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to open cart")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.get("/<int:cart_id>")
def get_cart_route(cart_id: int):
    try:
        return jsonify(_cart_payload(cart_id, _term_arg())), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.post("/<int:cart_id>/lines")
def add_line_route(cart_id: int):
    """
    Request body:
    {
        "product_id": 12
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        product_id = data.get("product_id")
        if not isinstance(product_id, int):
            return jsonify({"error": "product_id required", "reason": "VALIDATION_ERROR", "details": {}}), 400
        cart_service.add_line(cart_id, product_id)
        return jsonify(_cart_payload(cart_id, _term_arg())), 201
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add cart line")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.patch("/<int:cart_id>/lines/<int:line_id>")
def set_quantity_route(cart_id: int, line_id: int):
    """Typed quantity; blank or non-numeric parks the line at 0 until /commit."""
    try:
        data = request.get_json(silent=True) or {}
        cart_service.set_quantity(cart_id, line_id, data.get("quantity"))
        return jsonify(_cart_payload(cart_id, _term_arg())), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set quantity")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.post("/<int:cart_id>/lines/<int:line_id>/adjust")
def adjust_quantity_route(cart_id: int, line_id: int):
    try:
        data = request.get_json(silent=True) or {}
        cart_service.adjust_quantity(cart_id, line_id, data.get("delta"))
        return jsonify(_cart_payload(cart_id, _term_arg())), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust quantity")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.post("/<int:cart_id>/lines/<int:line_id>/commit")
def commit_quantity_route(cart_id: int, line_id: int):
    try:
        cart_service.commit_quantity(cart_id, line_id)
        return jsonify(_cart_payload(cart_id, _term_arg())), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to commit quantity")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.delete("/<int:cart_id>/lines/<int:line_id>")
def remove_line_route(cart_id: int, line_id: int):
    try:
        cart_service.remove_line(cart_id, line_id)
        return jsonify(_cart_payload(cart_id, _term_arg())), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove cart line")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.post("/<int:cart_id>/customer")
def select_customer_route(cart_id: int):
    """
    Request body (either):
    { "customer_id": 3 }
    { "name": "Jane", "phone": "555-0100", "email": null }   (walk-in)
    """
    try:
        data = request.get_json(silent=True) or {}
        cart_service.select_customer(
            cart_id,
            customer_id=data.get("customer_id"),
            name=data.get("name"),
            phone=data.get("phone"),
            email=data.get("email"),
        )
        return jsonify(_cart_payload(cart_id, _term_arg())), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to select customer")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.post("/<int:cart_id>/payment-method")
def set_payment_method_route(cart_id: int):
    try:
        data = request.get_json(silent=True) or {}
        cart_service.set_payment_method(cart_id, data.get("payment_method"))
        return jsonify(_cart_payload(cart_id, _term_arg())), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set payment method")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.post("/<int:cart_id>/clear")
def clear_cart_route(cart_id: int):
    try:
        data = request.get_json(silent=True) or {}
        cart_service.clear(cart_id, reset_customer_identity=bool(data.get("reset_customer")))
        return jsonify(_cart_payload(cart_id)), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to clear cart")
        return jsonify({"error": "Internal server error"}), 500


@carts_bp.post("/<int:cart_id>/checkout")
def checkout_route(cart_id: int):
    """
    Request body:
    {
        "payment_method": "CASH",           (optional, defaults to the cart's)
        "amount_tendered_cents": 5000,      (CASH)
        "credit_term_id": 2,                (STORE_CREDIT, optional)
        "cashier_id": 1                     (optional)
    }

    Returns:
        201: Sale committed
        400: Validation failure (cart untouched)
    """
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.complete_sale(
            cart_id,
            cashier_id=data.get("cashier_id"),
            amount_tendered_cents=data.get("amount_tendered_cents"),
            credit_term_id=data.get("credit_term_id"),
            payment_method=data.get("payment_method"),
        )
        return jsonify({"sale": sale.to_dict(), **_cart_payload(cart_id)}), 201
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Checkout failed")
        return jsonify({"error": "Internal server error"}), 500
