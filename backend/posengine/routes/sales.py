# Overview: Flask API routes for sales history and returns; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..services import return_service, sales_service
from ..services.history_service import sale_view
from ..validation import EngineError

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")
returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@sales_bp.get("")
def list_sales_route():
    """Query: status=COMPLETED|PARTIAL|RETURNED, search=<doc number or customer>."""
    try:
        sales = sales_service.list_sales(
            status=request.args.get("status"),
            search=request.args.get("search"),
        )
        return jsonify({"sales": [sale_view(s) for s in sales]}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
def get_sale_route(sale_id: int):
    try:
        return jsonify({"sale": sale_view(sales_service.get_sale(sale_id))}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/<int:sale_id>/returns")
def process_return_route(sale_id: int):
    """
    Request body:
    {
        "items": [
            {"product_id": 4, "quantity": 1, "restock": true, "reason": "Defective"}
        ],
        "refund_method": "CASH",   (optional, defaults to how the sale was paid)
        "cashier_id": 1
    }

    Returns:
        201: Return processed
        400: Invalid selection
        409: Quantity exceeds what remains returnable
    """
    try:
        data = request.get_json(silent=True) or {}
        ret = return_service.process_return(
            sale_id,
            items=data.get("items") or [],
            refund_method=data.get("refund_method"),
            cashier_id=data.get("cashier_id"),
        )
        return jsonify({
            "return": ret.to_dict(),
            "sale": sale_view(sales_service.get_sale(sale_id)),
        }), 201
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to process return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/<int:return_id>")
def get_return_route(return_id: int):
    try:
        return jsonify({"return": return_service.get_return(return_id).to_dict()}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("")
def list_returns_route():
    try:
        returns = return_service.list_returns(search=request.args.get("search"))
        return jsonify({"returns": [r.to_dict() for r in returns]}), 200
    except EngineError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list returns")
        return jsonify({"error": "Internal server error"}), 500
