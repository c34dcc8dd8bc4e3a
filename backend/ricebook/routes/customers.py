# Overview: Flask API routes for customer accounts; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..errors import LedgerError
from ..services import customer_service, ledger_service
from ..validation import ValidationError, require_payload


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
def list_customers_route():
    customers = customer_service.list_customers(
        search=request.args.get("q"),
        location=request.args.get("location"),
    )
    return jsonify({"items": [c.to_dict() for c in customers]}), 200


@customers_bp.post("")
def create_customer_route():
    """
    Create a customer.

    Body: name, phone, address?, location?, open_balance?
    A non-zero open_balance also writes an opening-balance SALE record.
    """
    try:
        data = require_payload(request.get_json(silent=True))
        customer = customer_service.create_customer(
            name=data.get("name"),
            phone=data.get("phone"),
            address=data.get("address"),
            location=data.get("location"),
            open_balance=data.get("open_balance"),
        )
        return jsonify({"customer": customer.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<customer_id>")
def get_customer_route(customer_id: str):
    customer = customer_service.get_customer(customer_id)
    if customer is None:
        return jsonify({"error": "Customer not found"}), 404
    return jsonify({"customer": customer.to_dict()}), 200


@customers_bp.delete("/<customer_id>")
def delete_customer_route(customer_id: str):
    try:
        customer_service.delete_customer(customer_id)
        return jsonify({"deleted": customer_id}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<customer_id>/transactions")
def list_customer_transactions_route(customer_id: str):
    try:
        records = customer_service.list_customer_transactions(customer_id)
        return jsonify({"items": [t.to_dict() for t in records]}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status


@customers_bp.post("/<customer_id>/adjustments")
def create_adjustment_route(customer_id: str):
    """Add a manual amount to the customer's balance (body: amount, notes?)."""
    try:
        data = require_payload(request.get_json(silent=True))
        result = ledger_service.record_balance_adjustment(
            customer_id,
            data.get("amount"),
            data.get("notes"),
        )
        return jsonify({"result": result.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record balance adjustment")
        return jsonify({"error": "Internal server error"}), 500
