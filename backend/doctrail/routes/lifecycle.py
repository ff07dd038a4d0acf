# backend/doctrail/routes/lifecycle.py
"""
Document Lifecycle API Routes

These routes move documents between statuses:
- POST /api/lifecycle/<kind>/<id>/<action>
    action: send, receive, return, complete, payment, refund,
            approve, reject, process, cancel, archive
- POST /api/lifecycle/<kind>/<id>/lines/<line_id>/return-item
- POST /api/lifecycle/<kind>/<id>/lines/<line_id>/restock-item

WHY SEPARATE ROUTES:
- Lifecycle operations are distinct from editing a document
- Makes it clear which endpoints have side effects (stock, invoices, refunds)

RESPONSES:
- 200 with {"ok": true, "document": ..., ["invoice": ...]}
- 4xx with {"ok": false, "error": {"error": ..., "code": ...}, "document": ...}
  The document in a failed response is unchanged.
- The acting user comes from X-User-Id and is recorded on the activity trail
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_store
from ..services import document_service, lifecycle_service
from ..services.document_errors import DocumentError
from ..validation import ValidationError
from .documents import error_response


lifecycle_bp = Blueprint("lifecycle", __name__, url_prefix="/api/lifecycle")


def _action_kwargs(action: str, data: dict) -> dict:
    """Pick the body fields each action understands."""
    if action == "payment":
        amount = data.get("amount_cents")
        if amount is not None and (isinstance(amount, bool) or not isinstance(amount, int)):
            raise ValidationError("amount_cents must be an integer")
        return {
            "method": data.get("method"),
            "amount_cents": amount,
            "reference": data.get("reference"),
        }
    if action == "reject":
        return {"reason": data.get("reason")}
    if action == "process":
        return {"refund_method": data.get("refund_method")}
    if action == "cancel":
        return {"reason": data.get("reason")}
    return {}


def _result_response(result: lifecycle_service.TransitionResult):
    if result.ok:
        return jsonify(result.to_dict()), 200
    return jsonify(result.to_dict()), result.error.http_status


@lifecycle_bp.post("/<kind>/<int:document_id>/<action>")
@require_store
def transition_route(kind: str, document_id: int, action: str):
    """
    Run a named transition.

    Request body (action-specific, optional otherwise):
        payment: {"method": "cash", "amount_cents": 10800, "reference": "..."}
        reject:  {"reason": "Outside the return window"}
        process: {"refund_method": "store_credit"}
        cancel:  {"reason": "..."}

    Error responses:
        400: Invalid input
        404: Document not found (or owned by another store)
        409: Transition not allowed from the current status
        422: Missing prerequisite (vendor, items, customer, reason)
    """
    try:
        operation = lifecycle_service.ACTIONS.get(action)
        if operation is None:
            return jsonify({"error": f"Unknown action '{action}'", "code": "invalid_input"}), 404

        document_service.get_document(g.store_id, document_id, kind=kind)
        data = request.get_json(silent=True) or {}

        result = operation(
            g.store_id,
            document_id,
            actor_user_id=g.actor_user_id,
            **_action_kwargs(action, data),
        )
        return _result_response(result)

    except (DocumentError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to run %s on document %s", action, document_id)
        return jsonify({"error": "Internal server error"}), 500


@lifecycle_bp.post("/<kind>/<int:document_id>/lines/<int:line_id>/return-item")
@require_store
def return_item_route(kind: str, document_id: int, line_id: int):
    """Return one memo line to stock."""
    try:
        document_service.get_document(g.store_id, document_id, kind=kind)
        result = lifecycle_service.return_item(
            g.store_id, document_id, line_id, actor_user_id=g.actor_user_id
        )
        return _result_response(result)

    except (DocumentError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to return line %s", line_id)
        return jsonify({"error": "Internal server error"}), 500


@lifecycle_bp.post("/<kind>/<int:document_id>/lines/<int:line_id>/restock-item")
@require_store
def restock_item_route(kind: str, document_id: int, line_id: int):
    """Explicitly restock one line (409 if it was already restocked)."""
    try:
        document_service.get_document(g.store_id, document_id, kind=kind)
        result = lifecycle_service.restock_item(
            g.store_id, document_id, line_id, actor_user_id=g.actor_user_id
        )
        return _result_response(result)

    except (DocumentError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to restock line %s", line_id)
        return jsonify({"error": "Internal server error"}), 500
