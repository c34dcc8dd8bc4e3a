# Overview: Flask API routes for inventory; stock receipt, write-off and brand listing.

from flask import Blueprint, request, jsonify, current_app

from ..catalog import load_catalog
from ..errors import LedgerError
from ..services import inventory_service
from ..validation import ValidationError, require_payload


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
def list_inventory_route():
    items = inventory_service.list_inventory()
    return jsonify({"items": [i.to_dict() for i in items]}), 200


@inventory_bp.get("/brands")
def list_brands_route():
    return jsonify({"items": load_catalog().to_list()}), 200


@inventory_bp.get("/<product_id>")
def get_inventory_route(product_id: str):
    item = inventory_service.get_inventory_item(product_id)
    if item is None:
        return jsonify({"error": "Inventory item not found"}), 404
    return jsonify({
        "item": item.to_dict(),
        "summary": inventory_service.get_inventory_summary(product_id),
    }), 200


@inventory_bp.post("/<product_id>/stock")
def add_stock_route(product_id: str):
    """
    Receive stock as a new batch.

    Body: bags, unit_cost?, date?
    unit_cost defaults to the brand's configured default cost.
    """
    try:
        data = require_payload(request.get_json(silent=True))
        catalog = load_catalog()
        brand = catalog.require_brand(product_id)

        unit_cost = data.get("unit_cost")
        if unit_cost is None:
            unit_cost = catalog.default_cost_for(brand)

        change = inventory_service.add_stock(
            product_id=brand,
            bags=data.get("bags"),
            unit_cost=unit_cost,
            occurred_at=data.get("date"),
        )
        return jsonify({"result": change.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to add stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/<product_id>/remove")
def remove_stock_route(product_id: str):
    """Write off stock oldest-first; clamped at zero (body: bags)."""
    try:
        data = require_payload(request.get_json(silent=True))
        change = inventory_service.remove_stock(product_id=product_id, bags=data.get("bags"))
        return jsonify({"result": change.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to remove stock")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.delete("/<product_id>")
def delete_inventory_route(product_id: str):
    try:
        inventory_service.delete_inventory_item(product_id)
        return jsonify({"deleted": product_id}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete inventory item")
        return jsonify({"error": "Internal server error"}), 500
