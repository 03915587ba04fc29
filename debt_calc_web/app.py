"""Flask JSON API over a :class:`~debt_calc.store.LoanStore`.

The app is built by :func:`create_app` rather than at import time so that
tests can hand it an in-memory store. Run this module directly to serve the
store configured through ``DEBTCALC_DATABASE_URL``.
"""

import io
import logging
import os

from flask import Flask, Response, jsonify, request

from debt_calc.editing import sanitize_patch
from debt_calc.engine import summarize_loan
from debt_calc.formatter import write_csv
from debt_calc.portfolio import loan_rows, portfolio_kpis
from debt_calc.storage import create_storage_from_env
from debt_calc.store import LoanStore

logger = logging.getLogger(__name__)

UI_FIELD_ALIASES = {
    "showClosed": "show_closed",
    "sortBy": "sort_by",
    "selectedId": "selected_id",
}


def _store_from_env() -> LoanStore:
    max_history = os.environ.get("DEBTCALC_MAX_HISTORY")
    return LoanStore(
        create_storage_from_env(os.environ.get("DEBTCALC_DATABASE_URL")),
        max_history=int(max_history) if max_history else None,
    )


def _json_body() -> dict:
    body = request.get_json(silent=True)
    if body is None:
        return {}
    if not isinstance(body, dict):
        raise ValueError("Request body must be a JSON object")
    return body


def _ui_patch(body: dict) -> dict:
    patch = {}
    for key, value in body.items():
        name = UI_FIELD_ALIASES.get(key, key)
        if name not in ("show_closed", "sort_by", "selected_id"):
            raise ValueError(f"Unknown UI field: {key}")
        patch[name] = value
    return patch


def _serialize_rows(rows, selected_id):
    serialized = []
    for loan, summary in rows:
        item = loan.to_dict()
        item["summary"] = summary.to_dict()
        item["selected"] = loan.id == selected_id
        serialized.append(item)
    return serialized


def create_app(store: LoanStore = None) -> Flask:
    """Build the JSON API around a single store instance.

    The store is created from the environment when not supplied, so tests can
    pass their own in-memory store.
    """
    app = Flask(__name__)
    app.config["LOAN_STORE"] = store if store is not None else _store_from_env()

    def get_store() -> LoanStore:
        return app.config["LOAN_STORE"]

    def state_response():
        return jsonify(get_store().state.to_dict())

    def not_found(loan_id):
        return jsonify({"error": f"Unknown loan id: {loan_id}"}), 404

    @app.errorhandler(ValueError)
    def handle_value_error(exc):
        return jsonify({"error": str(exc)}), 400

    @app.get("/api/state")
    def get_state():
        return state_response()

    @app.get("/api/loans")
    def list_loans():
        store = get_store()
        loans, ui = store.loans, store.ui
        rows = loan_rows(loans, ui)
        return jsonify(
            {
                "loans": _serialize_rows(rows, ui.selected_id),
                "kpis": portfolio_kpis(loans, ui).to_dict(),
                "ui": ui.to_dict(),
            }
        )

    @app.get("/api/loans/<loan_id>")
    def get_loan(loan_id):
        loan = get_store().get_loan(loan_id)
        if loan is None:
            return not_found(loan_id)
        summary = summarize_loan(loan)
        if summary.non_amortizing:
            logger.debug("Loan %s never amortizes at its current terms", loan_id)
        return jsonify({"loan": loan.to_dict(), "summary": summary.to_dict()})

    @app.get("/api/loans/<loan_id>/schedule")
    def get_schedule(loan_id):
        loan = get_store().get_loan(loan_id)
        if loan is None:
            return not_found(loan_id)
        policy = request.args.get("policy", "extra")
        if policy not in ("extra", "base"):
            raise ValueError("policy must be 'extra' or 'base'")
        summary = summarize_loan(loan)
        rows = summary.schedule if policy == "extra" else summary.schedule_base
        return jsonify({"policy": policy, "rows": [row.to_dict() for row in rows]})

    @app.post("/api/loans")
    def add_loan():
        loan = get_store().add_loan()
        return jsonify({"loan": loan.to_dict()}), 201

    @app.patch("/api/loans/<loan_id>")
    def update_loan(loan_id):
        patch = sanitize_patch(_json_body())
        get_store().update_loan(loan_id, patch)
        return state_response()

    @app.delete("/api/loans/<loan_id>")
    def remove_loan(loan_id):
        get_store().remove_loan(loan_id)
        return state_response()

    @app.post("/api/select")
    def select_loan():
        get_store().select(_json_body().get("id"))
        return state_response()

    @app.patch("/api/ui")
    def update_ui():
        get_store().set_ui(_ui_patch(_json_body()))
        return state_response()

    @app.post("/api/reset")
    def reset():
        get_store().reset()
        return state_response()

    @app.post("/api/undo")
    def undo():
        undone = get_store().undo()
        payload = get_store().state.to_dict()
        payload["undone"] = undone
        return jsonify(payload)

    @app.get("/export.csv")
    def export_csv():
        buffer = io.StringIO()
        write_csv(buffer, get_store().loans)
        return Response(
            buffer.getvalue(),
            mimetype="text/csv",
            headers={"Content-Disposition": "attachment; filename=debt-summary.csv"},
        )

    return app


if __name__ == "__main__":
    logging.basicConfig(level=os.environ.get("DEBTCALC_LOG_LEVEL", "INFO").upper())
    print("Starting Debt Calculator web app...")
    create_app().run(debug=os.environ.get("FLASK_DEBUG") == "1")
