"""
SQLAlchemy models for the SENDIX freight core.
"""
from sendix.models.user import User, UserRole
from sendix.models.load import Load
from sendix.models.proposal import Proposal, ProposalStatus, ShipStatus, SHIP_SEQUENCE
from sendix.models.commission import Commission, CommissionStatus
from sendix.models.thread import Thread, ThreadMessage, ThreadRead

__all__ = [
    "User",
    "UserRole",
    "Load",
    "Proposal",
    "ProposalStatus",
    "ShipStatus",
    "SHIP_SEQUENCE",
    "Commission",
    "CommissionStatus",
    "Thread",
    "ThreadMessage",
    "ThreadRead",
]
