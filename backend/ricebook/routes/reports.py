# Overview: Flask API routes for dashboard totals, CSV exports and the ledger audit.

from flask import Blueprint, Response, jsonify

from ..services import reporting_service
from ..time_utils import utcnow


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


def _csv_response(body: str, stem: str) -> Response:
    filename = f"{stem}_{utcnow().strftime('%Y%m%d')}.csv"
    return Response(
        body,
        mimetype="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@reports_bp.get("/dashboard")
def dashboard_route():
    return jsonify(reporting_service.dashboard_summary()), 200


@reports_bp.get("/balances.csv")
def balances_csv_route():
    return _csv_response(reporting_service.export_balances_csv(), "customer_balances")


@reports_bp.get("/transactions.csv")
def transactions_csv_route():
    return _csv_response(reporting_service.export_transactions_csv(), "transactions")


@reports_bp.get("/audit")
def audit_route():
    report = reporting_service.audit_ledger()
    return jsonify(report), 200
