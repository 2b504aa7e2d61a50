"""
Enumeration definitions for the Campaign Moderation Pipeline.
Decisions, review states, policy categories and signal labels.
"""

from enum import Enum


class Decision(str, Enum):
    """Outcome of a moderation pass."""
    APPROVE = "APPROVE"   # Campaign can go live
    HOLD = "HOLD"         # Needs human review
    REJECT = "REJECT"     # Blocked


# Outcomes a human reviewer may record. HOLD is never a final human call.
HUMAN_DECISIONS = (Decision.APPROVE, Decision.REJECT)


class ReviewStatus(str, Enum):
    """Lifecycle of a review queue item. PENDING -> REVIEWED only."""
    PENDING = "PENDING"
    REVIEWED = "REVIEWED"


class PolicyCategory(str, Enum):
    """Policy categories scored by the advisory classifier."""
    SCAM_FINANCIAL = "SCAM_FINANCIAL"
    IMPERSONATION = "IMPERSONATION"
    MEDICAL_CLAIMS = "MEDICAL_CLAIMS"
    PAYMENT_BYPASS = "PAYMENT_BYPASS"
    VIOLENT_ADULT_HATE = "VIOLENT_ADULT_HATE"
    SENSITIVE_DOCS = "SENSITIVE_DOCS"
    LOW_QUALITY_SPAM = "LOW_QUALITY_SPAM"


class ClassifierOutcome(str, Enum):
    """How the classifier result was obtained."""
    OK = "ok"                      # Provider answered, parsed field by field
    MOCK = "mock"                  # No credential, local heuristic used
    MALFORMED = "malformed"        # Provider answered with unusable output
    UNREACHABLE = "unreachable"    # Provider errored or timed out


class ImageLabel(str, Enum):
    """Labels attached to an uploaded image by the signal extractor."""
    UNSUPPORTED_FORMAT = "unsupported_format"
    LARGE_FILE_SIZE = "large_file_size"
    MODERATION_ERROR = "moderation_error"
    RISKY_TEXT_IN_IMAGE = "risky_text_in_image"
