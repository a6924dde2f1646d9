"""Database model type definitions."""

from portal.models.checkout_session import CheckoutSession
from portal.models.order import ORDER_STATUSES, Order, OrderStatus, Payment, PaymentStatus, Service
from portal.models.project import PROJECT_STAGES, Project, ProjectStatus
from portal.models.session import UserSession
from portal.models.user import USER_ROLES, User, UserRole

__all__ = [
    "CheckoutSession",
    "ORDER_STATUSES",
    "Order",
    "OrderStatus",
    "Payment",
    "PaymentStatus",
    "PROJECT_STAGES",
    "Project",
    "ProjectStatus",
    "Service",
    "User",
    "UserRole",
    "USER_ROLES",
    "UserSession",
]
