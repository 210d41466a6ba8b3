import enum


class UserRole(str, enum.Enum):
    CONSUMER = "consumer"
    PROVIDER = "provider"
    ADMIN = "admin"


class IssueStatus(str, enum.Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class IssuePriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    NEGOTIATING = "negotiating"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class ProposalType(str, enum.Enum):
    PRICE_CHANGE = "price_change"
    SCHEDULE_CHANGE = "schedule_change"
    REQUIREMENT_CHANGE = "requirement_change"
    COMPREHENSIVE = "comprehensive"


class ProposalStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COUNTERED = "countered"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class ProposalAction(str, enum.Enum):
    ACCEPT = "accept"
    REJECT = "reject"
    COUNTER = "counter"


class MessageType(str, enum.Enum):
    TEXT = "text"
    PRICE_OFFER = "price_offer"
    SCHEDULE_MODIFICATION = "schedule_modification"
    IMAGE = "image"
    DOCUMENT = "document"
    SYSTEM = "system"


class PriceUnit(str, enum.Enum):
    FIXED = "fixed"
    PER_HOUR = "per_hour"
    PER_VISIT = "per_visit"


class NotificationType(str, enum.Enum):
    ISSUE_UPDATE = "issue_update"
    BOOKING_REQUEST = "booking_request"
    BOOKING_UPDATE = "booking_update"
    PROPOSAL_UPDATE = "proposal_update"
    PAYMENT_SUCCESS = "payment_success"
    NEW_MESSAGE = "new_message"
    PROVIDER_VERIFIED = "provider_verified"
    SYSTEM_ANNOUNCEMENT = "system_announcement"
