from enum import Enum


class RequestStatus(str, Enum):
    PENDING = "PENDING"
    WAITING_CONFIRM = "WAITING_CONFIRM"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


OPEN_REQUEST_STATUSES = (RequestStatus.PENDING, RequestStatus.WAITING_CONFIRM)
