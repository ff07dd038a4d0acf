# Overview: Flask API routes for memos, repairs, appraisals and returns; parses input and returns JSON responses.

# backend/doctrail/routes/documents.py
"""
Document API Routes

<kind> is one of: memos, repairs, appraisals, returns.

DESIGN:
- Create documents through the wizard payload (header + items)
- Edit line items while the document is pending
- Adjust discount/fee/tax/shipping; totals are recomputed server-side
- Status override is an audited administrative correction
- Every route is scoped to the store named by X-Store-Id
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_store
from ..services import activity_service, document_service, invoice_service, lifecycle_service
from ..services.document_errors import DocumentError
from ..services.document_states import available_actions
from ..validation import ValidationError


documents_bp = Blueprint("documents", __name__, url_prefix="/api/documents")


def error_response(exc):
    if isinstance(exc, DocumentError):
        return jsonify(exc.to_dict()), exc.http_status
    return jsonify({"error": str(exc), "code": "validation_error"}), 400


def _bool_arg(name: str):
    raw = request.args.get(name)
    if raw is None:
        return None
    return raw.strip().lower() in ("1", "true", "yes")


# =============================================================================
# DOCUMENTS
# =============================================================================

@documents_bp.get("/<kind>")
@require_store
def list_documents_route(kind: str):
    """
    List documents of a kind for the store.

    Query params: status, overdue (memos only), limit, offset
    """
    try:
        document_type, is_appraisal = document_service.resolve_kind(kind)
        if _bool_arg("overdue"):
            docs = document_service.list_overdue_memos(g.store_id) if document_type == "memo" else []
        else:
            docs = document_service.list_documents(
                g.store_id,
                document_type=document_type,
                is_appraisal=is_appraisal if document_type == "repair" else None,
                status=request.args.get("status"),
                limit=min(request.args.get("limit", 200, type=int), 500),
                offset=request.args.get("offset", 0, type=int),
            )
        return jsonify({"documents": [d.to_dict() for d in docs]}), 200

    except (DocumentError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list documents")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<kind>")
@require_store
def create_document_route(kind: str):
    """
    Create a document (status: pending).

    Request body:
    {
        "vendor_id": 3,                  (or "vendor": {"name": ...})
        "customer_id": 7,                (or "customer": {"first_name": ...})
        "tenure_days": 30,               (memos: 7, 14, 30 or 60)
        "description": "...",
        "tax_rate_bps": 800,             (optional, default: store rate)
        "items": [{"inventory_unit_id": 1, "quantity": 1, "unit_price_cents": 10000}]
    }

    Returns:
        201: Document created
        400: Invalid input
        409: Insufficient stock
    """
    try:
        document_type, is_appraisal = document_service.resolve_kind(kind)
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({"error": "Invalid JSON payload"}), 400

        doc = document_service.create_document(
            g.store_id,
            document_type,
            data,
            is_appraisal=is_appraisal,
            created_by_user_id=g.actor_user_id,
        )
        return jsonify({"document": doc.to_dict(include_lines=True)}), 201

    except (DocumentError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/<kind>/<int:document_id>")
@require_store
def get_document_route(kind: str, document_id: int):
    try:
        doc = document_service.get_document(g.store_id, document_id, kind=kind)
        return jsonify({"document": doc.to_dict(include_lines=True)}), 200

    except (DocumentError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to get document")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.delete("/<kind>/<int:document_id>")
@require_store
def delete_document_route(kind: str, document_id: int):
    """Delete a pending document; drawn items are restocked first."""
    try:
        document_service.get_document(g.store_id, document_id, kind=kind)
        snapshot = document_service.delete_document(g.store_id, document_id, actor_user_id=g.actor_user_id)
        return jsonify({"deleted": snapshot}), 200

    except (DocumentError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete document")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# LINE ITEMS
# =============================================================================

@documents_bp.post("/<kind>/<int:document_id>/lines")
@require_store
def add_line_route(kind: str, document_id: int):
    try:
        document_service.get_document(g.store_id, document_id, kind=kind)
        line = document_service.add_line(
            g.store_id, document_id, request.get_json(silent=True), actor_user_id=g.actor_user_id
        )
        doc = document_service.get_document(g.store_id, document_id)
        return jsonify({"line": line.to_dict(), "document": doc.to_dict()}), 201

    except (DocumentError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add line")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.patch("/<kind>/<int:document_id>/lines/<int:line_id>")
@require_store
def update_line_route(kind: str, document_id: int, line_id: int):
    try:
        document_service.get_document(g.store_id, document_id, kind=kind)
        line = document_service.update_line(
            g.store_id, document_id, line_id, request.get_json(silent=True) or {},
            actor_user_id=g.actor_user_id,
        )
        doc = document_service.get_document(g.store_id, document_id)
        return jsonify({"line": line.to_dict(), "document": doc.to_dict()}), 200

    except (DocumentError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update line")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.delete("/<kind>/<int:document_id>/lines/<int:line_id>")
@require_store
def remove_line_route(kind: str, document_id: int, line_id: int):
    try:
        document_service.get_document(g.store_id, document_id, kind=kind)
        doc = document_service.remove_line(g.store_id, document_id, line_id, actor_user_id=g.actor_user_id)
        return jsonify({"document": doc.to_dict(include_lines=True)}), 200

    except (DocumentError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove line")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ADJUSTMENTS, STATUS, ACTIONS
# =============================================================================

@documents_bp.patch("/<kind>/<int:document_id>/adjustments")
@require_store
def update_adjustments_route(kind: str, document_id: int):
    """
    Request body (any subset):
    {
        "discount_value": 1000, "discount_unit": "fixed", "discount_reason": "...",
        "service_fee_value": 500, "service_fee_unit": "percent",
        "tax_rate_bps": 800, "charge_taxes": true,
        "shipping_cents": 1500, "restocking_fee_cents": 0
    }
    """
    try:
        document_service.get_document(g.store_id, document_id, kind=kind)
        doc = document_service.update_adjustments(
            g.store_id, document_id, request.get_json(silent=True) or {}, actor_user_id=g.actor_user_id
        )
        return jsonify({"document": doc.to_dict(include_lines=True)}), 200

    except (DocumentError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update adjustments")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.post("/<kind>/<int:document_id>/status")
@require_store
def change_status_route(kind: str, document_id: int):
    """
    Administrative status override. No side effects are run.

    Request body:
    {
        "status": "vendor_received",
        "reason": "Scanned the wrong memo"
    }
    """
    try:
        document_service.get_document(g.store_id, document_id, kind=kind)
        data = request.get_json(silent=True) or {}
        new_status = data.get("status")
        if not new_status:
            return jsonify({"error": "status required"}), 400

        result = lifecycle_service.change_status(
            g.store_id,
            document_id,
            new_status,
            actor_user_id=g.actor_user_id,
            reason=data.get("reason"),
        )
        if not result.ok:
            return jsonify(result.to_dict()), result.error.http_status
        return jsonify(result.to_dict()), 200

    except (DocumentError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to change document status")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/<kind>/<int:document_id>/actions")
@require_store
def available_actions_route(kind: str, document_id: int):
    try:
        doc = document_service.get_document(g.store_id, document_id, kind=kind)
        return jsonify({
            "status": doc.status,
            "actions": available_actions(doc.document_type, doc.status),
        }), 200

    except (DocumentError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list available actions")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/<kind>/<int:document_id>/activity")
@require_store
def document_activity_route(kind: str, document_id: int):
    """Activity trail for a document, newest first."""
    try:
        doc = document_service.get_document(g.store_id, document_id, kind=kind)
        entries = activity_service.list_activity(
            g.store_id,
            subject_type=doc.document_type,
            subject_id=doc.id,
            limit=min(request.args.get("limit", 100, type=int), 500),
        )
        return jsonify({"activity": [e.to_dict() for e in entries]}), 200

    except (DocumentError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list document activity")
        return jsonify({"error": "Internal server error"}), 500


@documents_bp.get("/<kind>/<int:document_id>/invoices")
@require_store
def document_invoices_route(kind: str, document_id: int):
    try:
        doc = document_service.get_document(g.store_id, document_id, kind=kind)
        invoices = invoice_service.list_invoices(g.store_id, document_id=doc.id)
        return jsonify({"invoices": [i.to_dict() for i in invoices]}), 200

    except (DocumentError, ValidationError) as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list document invoices")
        return jsonify({"error": "Internal server error"}), 500
