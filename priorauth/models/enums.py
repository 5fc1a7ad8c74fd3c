"""Enumeration types for the prior authorization pipeline."""
from enum import Enum


class RequestStatus(str, Enum):
    """Lifecycle status of a prior authorization request."""
    PENDING = "pending"
    PROCESSING = "processing"
    APPROVED = "approved"
    DENIED = "denied"
    REVIEW = "review"


class Priority(str, Enum):
    """Review priority of a request."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StepStatus(str, Enum):
    """Status of a coarse workflow step."""
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ERROR = "error"


class TraceLevel(str, Enum):
    """Severity of a fine-grained trace entry."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Decision(str, Enum):
    """Outcome recommended by the criteria matcher and finalized by the decision stage."""
    APPROVE = "approve"
    DENY = "deny"
    REVIEW = "review"

    def to_status(self) -> RequestStatus:
        """Map a decision to the persisted request status."""
        return {
            Decision.APPROVE: RequestStatus.APPROVED,
            Decision.DENY: RequestStatus.DENIED,
            Decision.REVIEW: RequestStatus.REVIEW,
        }[self]


class Complexity(str, Enum):
    """Case complexity derived during sensing."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DocumentType(str, Enum):
    """Kind of supporting document attached to a request."""
    CLINICAL_PDF = "clinical-pdf"
    SCANNED_IMAGE = "scanned-image"
    ELECTRONIC_SUBMISSION = "electronic-submission"
    UNKNOWN = "unknown"


class CriterionWeight(str, Enum):
    """Severity weight of a policy criterion."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"


class UpdateEvent(str, Enum):
    """Lifecycle events pushed to live update subscribers."""
    STATUS = "status"
    STEP = "step"
    TRACE = "trace"
    COMPLETE = "complete"
    ERROR = "error"
