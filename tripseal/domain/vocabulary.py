from __future__ import annotations

from typing import Literal


ROLE_SUPERADMIN = "SUPERADMIN"
ROLE_ADMIN = "ADMIN"
ROLE_COMPANY = "COMPANY"
ROLE_EMPLOYEE = "EMPLOYEE"
USER_ROLES = (ROLE_SUPERADMIN, ROLE_ADMIN, ROLE_COMPANY, ROLE_EMPLOYEE)

SUBROLE_OPERATOR = "OPERATOR"
SUBROLE_DRIVER = "DRIVER"
SUBROLE_TRANSPORTER = "TRANSPORTER"
SUBROLE_GUARD = "GUARD"
EMPLOYEE_SUBROLES = (SUBROLE_OPERATOR, SUBROLE_DRIVER, SUBROLE_TRANSPORTER, SUBROLE_GUARD)

SessionStatus = Literal["PENDING", "IN_PROGRESS", "COMPLETED"]
STATUS_PENDING = "PENDING"
STATUS_IN_PROGRESS = "IN_PROGRESS"
STATUS_COMPLETED = "COMPLETED"
SESSION_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED)

SEAL_STATUS_VERIFIED = "VERIFIED"
SEAL_STATUS_MISSING = "MISSING"
SEAL_STATUS_BROKEN = "BROKEN"
SEAL_STATUS_TAMPERED = "TAMPERED"
SEAL_STATUS_GUARD_ONLY = "GUARD_ONLY"
SEAL_STATUSES = (
    SEAL_STATUS_VERIFIED,
    SEAL_STATUS_MISSING,
    SEAL_STATUS_BROKEN,
    SEAL_STATUS_TAMPERED,
    SEAL_STATUS_GUARD_ONLY,
)

SEAL_METHOD_DEFAULT = "digitally scanned"
SEAL_METHOD_GUARD_ONLY = "guard only"

REASON_ADMIN_CREATION = "ADMIN_CREATION"
REASON_OPERATOR_CREATION = "OPERATOR_CREATION"
REASON_COIN_ALLOCATION = "COIN_ALLOCATION"
REASON_SESSION_CREATION = "SESSION_CREATION"

ACTION_CREATE = "CREATE"
ACTION_UPDATE = "UPDATE"
ACTION_DELETE = "DELETE"
ACTION_LOGIN = "LOGIN"
ACTION_LOGOUT = "LOGOUT"
ACTION_TRANSFER = "TRANSFER"
ACTION_ALLOCATE = "ALLOCATE"
ACTION_VIEW = "VIEW"

VEHICLE_STATUS_ACTIVE = "ACTIVE"
VEHICLE_STATUS_BUSY = "BUSY"
VEHICLE_STATUSES = (VEHICLE_STATUS_ACTIVE, VEHICLE_STATUS_BUSY, "INACTIVE", "MAINTENANCE")
VEHICLE_TYPE_TRUCK = "TRUCK"
VEHICLE_TYPES = (VEHICLE_TYPE_TRUCK, "TRAILER", "CONTAINER", "TANKER", "OTHER")

CommentUrgency = Literal["NA", "LOW", "MEDIUM", "HIGH"]

RESOURCE_SESSION = "SESSION"
RESOURCE_SEAL_TAG = "SEAL_TAG"
RESOURCE_GUARD_SEAL_TAG = "GUARD_SEAL_TAG"
RESOURCE_USER = "USER"
