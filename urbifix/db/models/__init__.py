from urbifix.db.models.booking import Booking
from urbifix.db.models.catalog import Category, Service
from urbifix.db.models.chat import ChatRoom, Message
from urbifix.db.models.issue import Issue, IssueContribution, IssueUpvote, IssueView
from urbifix.db.models.notification import Notification
from urbifix.db.models.proposal import Proposal
from urbifix.db.models.user import ProviderProfile, User

__all__ = [
    "Booking",
    "Category",
    "ChatRoom",
    "Issue",
    "IssueContribution",
    "IssueUpvote",
    "IssueView",
    "Message",
    "Notification",
    "Proposal",
    "ProviderProfile",
    "Service",
    "User",
]
