import enum


class UserRole(str, enum.Enum):
    HOMEOWNER = "homeowner"
    CONTRACTOR = "contractor"
    WORKER = "worker"
    ADMIN = "admin"


class ProjectStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    ON_HOLD = "on_hold"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MilestoneStatus(str, enum.Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    CHANGES_REQUESTED = "changes_requested"
    REJECTED = "rejected"


class MilestoneAction(str, enum.Enum):
    SUBMIT = "submit"
    APPROVE = "approve"
    REQUEST_CHANGES = "request_changes"
    REJECT = "reject"


class EscrowTransactionKind(str, enum.Enum):
    FUND = "fund"
    RELEASE = "release"


class PaymentMethod(str, enum.Enum):
    BANK = "bank"
    CARD = "card"
    APPLE = "apple"
    GOOGLE = "google"


class ApplicationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DENIED = "denied"
    WITHDRAWN = "withdrawn"


class ApplicationTarget(str, enum.Enum):
    PROJECT = "project"
    GIG = "gig"


class ApplicationDecision(str, enum.Enum):
    ACCEPT = "accept"
    DENY = "deny"


class GigStatus(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"


class ContractStatus(str, enum.Enum):
    PENDING = "pending"
    SIGNED = "signed"
    REJECTED = "rejected"


class NotificationCategory(str, enum.Enum):
    MILESTONE = "milestone"
    ESCROW = "escrow"
    APPLICATION = "application"
    CONTRACT = "contract"
    CHECK_IN = "check_in"
    PERSONNEL = "personnel"
    SYSTEM = "system"
    DISPUTE = "dispute"
    REVIEW = "review"


class DisputeStatus(str, enum.Enum):
    OPEN = "open"
    RESOLVED = "resolved"
    REJECTED = "rejected"


class TaskDecision(str, enum.Enum):
    APPROVE = "APPROVE"
    DENY = "DENY"
