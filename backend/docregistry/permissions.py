# Overview: Permission codes and the roles that hold them.

"""
Role-based permissions for the registry.

Users carry a single role; each role maps to a fixed permission set. Finer
rules (creator-only cancellation, recipient-only completion) are enforced by
the services, not here.
"""

from .constants import UserRole


MANAGE_REGISTER_CONFIGURATIONS = "MANAGE_REGISTER_CONFIGURATIONS"
REGISTER_DOCUMENTS = "REGISTER_DOCUMENTS"
VIEW_DOCUMENTS = "VIEW_DOCUMENTS"
ROUTE_ANY_DOCUMENT = "ROUTE_ANY_DOCUMENT"
ARCHIVE_DOCUMENTS = "ARCHIVE_DOCUMENTS"
VIEW_ALL_PARISHES = "VIEW_ALL_PARISHES"

# Each permission is defined as: (code, description)
PERMISSION_DEFINITIONS = [
    (MANAGE_REGISTER_CONFIGURATIONS, "Create, edit and delete register configurations"),
    (REGISTER_DOCUMENTS, "Register new documents and drafts"),
    (VIEW_DOCUMENTS, "View and search documents of the own parish"),
    (ROUTE_ANY_DOCUMENT, "Route any visible document, not only own or assigned ones"),
    (ARCHIVE_DOCUMENTS, "Archive resolved documents"),
    (VIEW_ALL_PARISHES, "See documents of every parish"),
]

DEFAULT_ROLE_PERMISSIONS = {
    UserRole.ADMIN.value: {code for code, _ in PERMISSION_DEFINITIONS},
    UserRole.REGISTRAR.value: {
        REGISTER_DOCUMENTS,
        VIEW_DOCUMENTS,
        ROUTE_ANY_DOCUMENT,
        ARCHIVE_DOCUMENTS,
    },
    UserRole.CLERK.value: {
        REGISTER_DOCUMENTS,
        VIEW_DOCUMENTS,
    },
}


def get_role_permissions(role: str) -> set[str]:
    return set(DEFAULT_ROLE_PERMISSIONS.get(role, set()))


def user_has_permission(user, permission_code: str) -> bool:
    if user is None or not user.is_active:
        return False
    return permission_code in DEFAULT_ROLE_PERMISSIONS.get(user.role, set())
