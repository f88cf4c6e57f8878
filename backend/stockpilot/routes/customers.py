# Overview: Flask API routes for customers operations; parses input and returns JSON responses.

# backend/stockpilot/routes/customers.py
"""
Customer routes.

Bulk import accepts either JSON {"rows": [[header...], [cell...], ...]} or a
spreadsheet upload (multipart "file": .csv or .xlsx). The first row is the
header row in both cases.
"""
import csv
import io

from flask import Blueprint, g, request

from ..decorators import require_auth, require_permission
from ..errors import ValidationError
from ..permissions import DELETE_CUSTOMERS, IMPORT_CUSTOMERS, MANAGE_CUSTOMERS, VIEW_CUSTOMERS
from ..results import run_action
from ..services import customers_service
from .common import query_filters, read_json

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _truthy(value, default: bool) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _rows_from_upload(file) -> list:
    filename = file.filename or ""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""

    if ext == "csv":
        try:
            text = file.stream.read().decode("utf-8-sig")
        except UnicodeDecodeError:
            raise ValidationError("The file is not valid UTF-8 text.", field_errors={"file": ["must be UTF-8 encoded"]})
        return [row for row in csv.reader(io.StringIO(text))]

    if ext in {"xlsx", "xlsm"}:
        from openpyxl import load_workbook

        try:
            wb = load_workbook(file.stream, read_only=True, data_only=True)
        except Exception:
            raise ValidationError("The spreadsheet could not be read.", field_errors={"file": ["is not a valid spreadsheet"]})
        sheet = wb.active
        return [list(row) for row in sheet.iter_rows(values_only=True)]

    raise ValidationError("Unsupported file format.", field_errors={"file": ["must be a .csv or .xlsx file"]})


@customers_bp.get("")
@require_auth
@require_permission(VIEW_CUSTOMERS)
def list_customers():
    filters = query_filters("search", "page", "limit")
    return run_action(customers_service.list_customers, filters=filters).to_response()


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_permission(VIEW_CUSTOMERS)
def get_customer_route(customer_id: int):
    return run_action(customers_service.get_customer, customer_id=customer_id).to_response()


@customers_bp.get("/<int:customer_id>/orders")
@require_auth
@require_permission(VIEW_CUSTOMERS)
def customer_orders_route(customer_id: int):
    """Customer detail page: the customer and their orders in one call."""
    return run_action(customers_service.get_customer_with_orders, customer_id=customer_id).to_response()


@customers_bp.post("")
@require_auth
@require_permission(MANAGE_CUSTOMERS)
def create_customer_route():
    return run_action(
        customers_service.create_customer, payload=read_json(), actor=g.current_user, success_status=201
    ).to_response()


@customers_bp.put("/<int:customer_id>")
@require_auth
@require_permission(MANAGE_CUSTOMERS)
def update_customer_route(customer_id: int):
    return run_action(
        customers_service.update_customer, customer_id=customer_id, payload=read_json(), actor=g.current_user
    ).to_response()


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_permission(DELETE_CUSTOMERS)
def delete_customer_route(customer_id: int):
    return run_action(
        customers_service.delete_customer, customer_id=customer_id, actor=g.current_user
    ).to_response()


@customers_bp.post("/import")
@require_auth
@require_permission(IMPORT_CUSTOMERS)
def import_customers_route():
    """
    Options (JSON keys or form fields): skip_duplicates (default true),
    update_existing (default false).
    """
    if "file" in request.files:
        options = request.form
        rows = _rows_from_upload(request.files["file"])
    else:
        options = read_json()
        rows = options.get("rows")
        if not isinstance(rows, list) or not all(isinstance(row, list) for row in rows):
            raise ValidationError(field_errors={"rows": ["must be a list of rows (lists of cells)"]})

    return run_action(
        customers_service.import_customers,
        rows=rows,
        actor=g.current_user,
        skip_duplicates=_truthy(options.get("skip_duplicates"), True),
        update_existing=_truthy(options.get("update_existing"), False),
    ).to_response()
