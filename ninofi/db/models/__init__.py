from ninofi.db.models.application import Application, Gig
from ninofi.db.models.audit import AuditLog
from ninofi.db.models.checkin import CheckIn
from ninofi.db.models.contract import Contract
from ninofi.db.models.dispute import Dispute
from ninofi.db.models.escrow import EscrowAccount, EscrowTransaction
from ninofi.db.models.milestone import Milestone
from ninofi.db.models.notification import Notification
from ninofi.db.models.project import Project, ProjectMedia, ProjectMember
from ninofi.db.models.review import Review
from ninofi.db.models.user import User

__all__ = [
    "Application",
    "AuditLog",
    "CheckIn",
    "Contract",
    "Dispute",
    "EscrowAccount",
    "EscrowTransaction",
    "Gig",
    "Milestone",
    "Notification",
    "Project",
    "ProjectMedia",
    "ProjectMember",
    "Review",
    "User",
]
