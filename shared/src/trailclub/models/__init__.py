"""SQLAlchemy ORM models for trailclub."""

from trailclub.models.base import Base
from trailclub.models.user import User
from trailclub.models.membership import Membership
from trailclub.models.membership_card import MembershipCard
from trailclub.models.membership_counter import MembershipCounter
from trailclub.models.webhook_event import WebhookEvent
from trailclub.models.audit_log import AuditLog

__all__ = [
    "Base",
    "User",
    "Membership",
    "MembershipCard",
    "MembershipCounter",
    "WebhookEvent",
    "AuditLog",
]
