"""
Role and capability definitions.

WHY: Role checks live in one place so routes and services agree on who may
do what. There are two roles; admin holds every capability, employee holds
the day-to-day ones.

Capabilities are coarse codes checked by require_permission (routes) and
require_capability (services).
"""

from .errors import PermissionDeniedError

ROLE_ADMIN = "admin"
ROLE_EMPLOYEE = "employee"
ROLES = (ROLE_ADMIN, ROLE_EMPLOYEE)


# =============================================================================
# CAPABILITY CODES
# =============================================================================

VIEW_CATALOG = "VIEW_CATALOG"
MANAGE_CATALOG = "MANAGE_CATALOG"
DELETE_PRODUCTS = "DELETE_PRODUCTS"
MANAGE_CATEGORIES = "MANAGE_CATEGORIES"

VIEW_CUSTOMERS = "VIEW_CUSTOMERS"
MANAGE_CUSTOMERS = "MANAGE_CUSTOMERS"
DELETE_CUSTOMERS = "DELETE_CUSTOMERS"
IMPORT_CUSTOMERS = "IMPORT_CUSTOMERS"

VIEW_ORDERS = "VIEW_ORDERS"
CREATE_ORDERS = "CREATE_ORDERS"
EDIT_ORDERS = "EDIT_ORDERS"
DELETE_ORDERS = "DELETE_ORDERS"
VIEW_DELETED_ORDERS = "VIEW_DELETED_ORDERS"

VIEW_INVENTORY = "VIEW_INVENTORY"
RECEIVE_INVENTORY = "RECEIVE_INVENTORY"
ADJUST_INVENTORY = "ADJUST_INVENTORY"

VIEW_REPORTS = "VIEW_REPORTS"
USE_REORDER_ADVISOR = "USE_REORDER_ADVISOR"
MANAGE_USERS = "MANAGE_USERS"


EMPLOYEE_CAPABILITIES = frozenset({
    VIEW_CATALOG,
    MANAGE_CATALOG,
    MANAGE_CATEGORIES,
    VIEW_CUSTOMERS,
    MANAGE_CUSTOMERS,
    IMPORT_CUSTOMERS,
    VIEW_ORDERS,
    CREATE_ORDERS,
    EDIT_ORDERS,
    VIEW_INVENTORY,
    RECEIVE_INVENTORY,
    ADJUST_INVENTORY,
    VIEW_REPORTS,
    USE_REORDER_ADVISOR,
})

# Admin has all capabilities
ADMIN_CAPABILITIES = EMPLOYEE_CAPABILITIES | frozenset({
    DELETE_PRODUCTS,
    DELETE_CUSTOMERS,
    DELETE_ORDERS,
    VIEW_DELETED_ORDERS,
    MANAGE_USERS,
})

ROLE_CAPABILITIES = {
    ROLE_ADMIN: ADMIN_CAPABILITIES,
    ROLE_EMPLOYEE: EMPLOYEE_CAPABILITIES,
}


def capabilities_for(role: str | None) -> frozenset:
    return ROLE_CAPABILITIES.get(role or "", frozenset())


def has_capability(user, code: str) -> bool:
    if user is None or not getattr(user, "is_active", False):
        return False
    return code in capabilities_for(user.role)


def require_capability(user, code: str) -> None:
    """Raise PermissionDeniedError unless the user's role grants `code`."""
    if not has_capability(user, code):
        raise PermissionDeniedError(
            "You do not have permission to perform this action.",
            details={"required_permission": code},
        )
