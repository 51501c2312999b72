"""Kerbi PCN Appeals - Data Models"""
from .ssot import (
    # Constants
    NOT_DETECTED, GENERAL_REVIEW_LABEL,
    # Enums
    IssueCategory, ActionType, GateDecision, VehicleRegistrationOutcome,
    # Extraction
    TicketDetails, ExtractionResult,
    # Analysis
    ComplianceAnalysis,
    # Entitlement
    EntitlementRecord, VehicleRegistrationResult, UsageSummary,
)
from .letter_object import LetterSection, LetterBlock, AppealLetter

__all__ = [
    "NOT_DETECTED", "GENERAL_REVIEW_LABEL",
    "IssueCategory", "ActionType", "GateDecision", "VehicleRegistrationOutcome",
    "TicketDetails", "ExtractionResult",
    "ComplianceAnalysis",
    "EntitlementRecord", "VehicleRegistrationResult", "UsageSummary",
    "LetterSection", "LetterBlock", "AppealLetter",
]
