"""
Appeals

- AppealService: appeal records, forward-only status lifecycle, chat flow
"""
from .appeal_service import (
    AppealService,
    STATUS_TRANSITIONS,
    can_transition,
    is_terminal_status,
)

__all__ = [
    "AppealService",
    "STATUS_TRANSITIONS",
    "can_transition",
    "is_terminal_status",
]
