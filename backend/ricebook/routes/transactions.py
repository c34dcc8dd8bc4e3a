# Overview: Flask API routes for recording and reversing ledger transactions.

from flask import Blueprint, request, jsonify, current_app

from ..catalog import load_catalog
from ..errors import LedgerError
from ..records import SaleDetails, TransactionType
from ..services import ledger_service, reversal_service
from ..validation import ValidationError, require_payload


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.get("")
def list_recent_transactions_route():
    limit = request.args.get("limit", default=20, type=int)
    limit = max(1, min(limit, 200))
    records = ledger_service.list_recent_transactions(limit=limit)
    return jsonify({"items": [t.to_dict() for t in records]}), 200


@transactions_bp.get("/<transaction_id>")
def get_transaction_route(transaction_id: str):
    record = ledger_service.get_transaction(transaction_id)
    if record is None:
        return jsonify({"error": "Transaction not found"}), 404
    return jsonify({"transaction": record.to_dict()}), 200


@transactions_bp.post("")
def record_transaction_route():
    """
    Record a SALE or PAYMENT.

    SALE body: type, customer_id, brand, bags, price_per_bag,
               partial_payment_now?, notes?, date?
    PAYMENT body: type, customer_id, amount, notes?, date?

    Rejections carry the exact reason, e.g. the bags actually available.
    """
    try:
        data = require_payload(request.get_json(silent=True))
        catalog = load_catalog()

        brand = data.get("brand")
        if str(data.get("type", "")).strip().upper() == TransactionType.SALE.value:
            if brand is None or not str(brand).strip():
                raise ValidationError("brand is required")
            brand = catalog.require_brand(str(brand).strip())

        result = ledger_service.record_transaction(
            data.get("type"),
            data.get("customer_id"),
            product_id=brand,
            bags=data.get("bags"),
            price_per_bag=data.get("price_per_bag"),
            payment_amount=data.get("amount"),
            partial_payment_now=data.get("partial_payment_now"),
            notes=data.get("notes"),
            default_cost=catalog.default_cost_for(brand),
            occurred_at=data.get("date"),
        )
        return jsonify({"result": result.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.delete("/<transaction_id>")
def reverse_transaction_route(transaction_id: str):
    """Reverse a record: undo its balance and stock effects, then delete it."""
    try:
        catalog = load_catalog()
        record = ledger_service.get_transaction(transaction_id)
        details = record.read_details() if record is not None else None
        brand = details.brand if isinstance(details, SaleDetails) else None

        result = reversal_service.reverse_transaction(
            transaction_id,
            default_cost=catalog.default_cost_for(brand),
        )
        return jsonify({"result": result.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to reverse transaction")
        return jsonify({"error": "Internal server error"}), 500
