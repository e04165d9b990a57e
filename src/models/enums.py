import enum


class InvoiceWorkflowStatus(str, enum.Enum):
    DRAFT = "draft"
    SENT = "sent"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class QuoteWorkflowStatus(str, enum.Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    ESTIMATED = "estimated"
    APPROVED = "approved"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    CONFIRMED = "confirmed"


class MilestoneStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class MilestoneType(str, enum.Enum):
    DEPOSIT = "DEPOSIT"
    MILESTONE = "MILESTONE"
    FINAL = "FINAL"
    FULL = "FULL"


class Actor(str, enum.Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"
    SYSTEM = "system"


class NotificationType(str, enum.Enum):
    ESTIMATE_READY = "estimate_ready"
    CUSTOMER_ACTION = "customer_action"
    PAYMENT_RECEIVED = "payment_received"
    REMINDER = "reminder"


class RecipientType(str, enum.Enum):
    ADMIN = "admin"
    CUSTOMER = "customer"
