"""
Kerbi PCN Appeals - SQLAlchemy ORM Models
Relational models for users, entitlement records, appeals and payments
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import Column, String, Integer, DateTime, Text, JSON, ForeignKey, Enum as SQLEnum, Boolean
from sqlalchemy.orm import relationship
from ..database import Base


# =============================================================================
# ENUMS
# =============================================================================

class AppealStatus(str, Enum):
    """Lifecycle of a generated appeal. Moves forward only."""
    DRAFT = "draft"
    SUBMITTED = "submitted"
    UNDER_REVIEW = "under_review"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    WITHDRAWN = "withdrawn"


class PaymentType(str, Enum):
    """What a payment unlocks."""
    ADDITIONAL_APPEAL = "additional_appeal"
    VEHICLE_ADDITION = "vehicle_addition"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


# =============================================================================
# IDENTITY
# =============================================================================

class UserDB(Base):
    """User account owned by the identity boundary."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID
    email = Column(String(255), unique=True, nullable=False, index=True)
    full_name = Column(String(255), nullable=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    profile = relationship("EntitlementDB", back_populates="user", uselist=False, cascade="all, delete-orphan")


# =============================================================================
# ENTITLEMENT RECORD
# =============================================================================

class EntitlementDB(Base):
    """
    Per-user profile and quota record.

    One row per user. Counters are only ever changed through conditional
    UPDATE statements issued by the EntitlementLedger.
    """
    __tablename__ = "user_profiles"

    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)

    # ==========================================================================
    # QUOTA
    # ==========================================================================
    free_appeals_used = Column(Integer, nullable=False, default=0)
    paid_appeals_used = Column(Integer, nullable=False, default=0)
    total_appeals_created = Column(Integer, nullable=False, default=0)
    last_free_appeal_reset = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Succeeded payments not yet spent on the action they unlock
    paid_appeal_credits = Column(Integer, nullable=False, default=0)
    vehicle_change_credits = Column(Integer, nullable=False, default=0)

    # ==========================================================================
    # VEHICLE (single primary slot)
    # ==========================================================================
    vehicle_registration = Column(String(16), nullable=True)
    vehicle_make = Column(String(100), nullable=True)
    vehicle_model = Column(String(100), nullable=True)
    vehicle_color = Column(String(50), nullable=True)
    vehicle_year = Column(Integer, nullable=True)

    # ==========================================================================
    # PROFILE
    # ==========================================================================
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)
    payment_customer_ref = Column(String(255), nullable=True)  # Stripe customer id

    # ==========================================================================
    # DASHBOARD STATISTICS (pence)
    # ==========================================================================
    successful_appeals = Column(Integer, nullable=False, default=0)
    unsuccessful_appeals = Column(Integer, nullable=False, default=0)
    total_ticket_value = Column(Integer, nullable=False, default=0)
    total_savings = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = relationship("UserDB", back_populates="profile")


# =============================================================================
# APPEALS
# =============================================================================

class AppealDB(Base):
    """Persisted appeal. Issue labels and probability are fixed at creation."""
    __tablename__ = "appeals"

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    number_plate = Column(String(16), nullable=True)
    pcn_number = Column(String(64), nullable=True)
    ticket_value = Column(Integer, nullable=False, default=0)  # pence
    content = Column(Text, nullable=False)
    letter_content = Column(Text, nullable=True)  # Absent for analysis-only results
    status = Column(SQLEnum(AppealStatus), nullable=False, default=AppealStatus.DRAFT)
    is_free_appeal = Column(Boolean, nullable=False, default=True)

    compliance_issues = Column(JSON, nullable=False, default=list)
    success_probability = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


# =============================================================================
# PAYMENTS
# =============================================================================

class PaymentDB(Base):
    """One row per payment intent requested from the processor."""
    __tablename__ = "payments"

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_intent_id = Column(String(255), unique=True, nullable=False, index=True)

    amount = Column(Integer, nullable=False)  # pence
    currency = Column(String(3), nullable=False, default="gbp")
    status = Column(SQLEnum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING)
    payment_type = Column(SQLEnum(PaymentType), nullable=False)
    appeal_id = Column(String(36), nullable=True)

    # Set once the success has been applied to the entitlement record
    applied_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
