from enum import Enum


class BrandShareRoleEnum(str, Enum):
    editor = "editor"
    viewer = "viewer"


class BrandShareStatusEnum(str, Enum):
    pending = "pending"
    accepted = "accepted"
    revoked = "revoked"


class AdMetaStatusEnum(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    ARCHIVED = "ARCHIVED"
    DRAFT = "DRAFT"


class AdAppStatusEnum(str, Enum):
    DRAFT = "DRAFT"
    UPLOADING = "UPLOADING"
    PUBLISHED = "PUBLISHED"
    ERROR = "ERROR"


class AdAssetTypeEnum(str, Enum):
    image = "image"
    video = "video"


class CallToActionEnum(str, Enum):
    BOOK_TRAVEL = "BOOK_TRAVEL"
    CALL_NOW = "CALL_NOW"
    CONTACT_US = "CONTACT_US"
    DOWNLOAD = "DOWNLOAD"
    GET_DIRECTIONS = "GET_DIRECTIONS"
    LEARN_MORE = "LEARN_MORE"
    SHOP_NOW = "SHOP_NOW"
    SIGN_UP = "SIGN_UP"
    SUBSCRIBE = "SUBSCRIBE"
    WATCH_MORE = "WATCH_MORE"
    NO_BUTTON = "NO_BUTTON"


class ContractStatusEnum(str, Enum):
    draft = "draft"
    sent = "sent"
    partially_signed = "partially_signed"
    completed = "completed"
    voided = "voided"


class RecipientStatusEnum(str, Enum):
    pending = "pending"
    sent = "sent"
    viewed = "viewed"
    signed = "signed"
    declined = "declined"


class RecipientRoleEnum(str, Enum):
    signer = "signer"
    cc = "cc"
    viewer = "viewer"


class ContractFieldTypeEnum(str, Enum):
    signature = "signature"
    date = "date"
    text = "text"
    checkbox = "checkbox"
    initial = "initial"


class ContractAuditActionEnum(str, Enum):
    created = "created"
    sent = "sent"
    viewed = "viewed"
    signed = "signed"
    declined = "declined"
    completed = "completed"
    voided = "voided"


# Creator and script statuses are free-form strings in the database; these lists are the
# values the product surfaces and the pipeline transitions between.
UGC_CREATOR_STATUSES = [
    "New Creator Submission",
    "Cold Outreach",
    "Primary Screen",
    "Backlog",
    "Approved for next steps",
    "Schedule call",
    "Call Schedule Attempted",
    "Call Scheduled",
    "Ready for scripts",
    "Rejected",
    "Application Received",
    "EMAIL_RESPONSE",
    "Active",
    "Inactive",
    "Paused",
    "Active in Slack",
]

UGC_CREATOR_CONTRACT_STATUSES = ["not signed", "contract sent", "contract signed"]

UGC_CREATOR_NOTIFY_STATUSES = {"Approved for next steps", "Ready for scripts", "Rejected"}

UGC_SCRIPT_STATUSES = [
    "NEW CREATOR SUBMISSION",
    "CREATOR_REASSIGNMENT",
    "PENDING_APPROVAL",
    "REVISION_REQUESTED",
    "APPROVED",
    "CREATOR_ASSIGNMENT",
    "SCRIPT_ASSIGNED",
    "CREATOR_APPROVED",
    "CONTENT_SUBMITTED",
    "CONTENT_REVISION_REQUESTED",
    "CONTENT_APPROVED",
    "FINAL_CONTENT_SUBMITTED",
    "READY_FOR_PAYMENT",
    "PAID",
    "COMPLETED",
    "INACTIVE",
    "REJECTED",
]

UGC_CONCEPT_STATUSES = [
    "Script Approval",
    "Creator Assignment",
    "Creator Shooting",
    "Content Approval",
    "To Edit",
]


class EmailMessageStatusEnum(str, Enum):
    received = "received"
    read = "read"
    sent = "sent"
    failed = "failed"


class SyncJobStatusEnum(str, Enum):
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


class ScorecardMetricTypeEnum(str, Enum):
    predefined = "predefined"
    custom = "custom"
