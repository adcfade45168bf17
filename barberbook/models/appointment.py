from sqlalchemy import (
    Column, String, Integer, Boolean, DateTime, ForeignKey, Index, CheckConstraint,
    Enum as SQLEnum, func, text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from barberbook.db.base_class import Base
from barberbook.domain.appointments import AppointmentStatus, PaymentStatus

def _enum_values(enum_cls):
    return [member.value for member in enum_cls]

class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        CheckConstraint("ends_at > starts_at", name="appointments_interval_valid"),
        # hold_expires_at only lives while the row is a hold
        CheckConstraint(
            "hold_expires_at is null or status in ('hold', 'pending_payment')",
            name="appointments_hold_expiry_only_on_holds",
        ),
        Index("ix_appointments_calendar", "org_id", "professional_id", "starts_at"),
        Index("ix_appointments_sweep", "status", "hold_expires_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()"))
    org_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False)
    unit_id = Column(UUID(as_uuid=True), ForeignKey("units.id"), nullable=True)
    professional_id = Column(UUID(as_uuid=True), ForeignKey("professionals.id"), nullable=False)
    service_id = Column(UUID(as_uuid=True), ForeignKey("services.id"), nullable=False)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    customer_phone = Column(String, index=True, nullable=False)
    customer_name = Column(String, nullable=True)
    status = Column(
        SQLEnum(AppointmentStatus, name="appointment_status", values_callable=_enum_values),
        nullable=False,
        default=AppointmentStatus.DRAFT,
    )
    hold_expires_at = Column(DateTime(timezone=True), nullable=True)
    deposit_amount_cents = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    payments = relationship("AppointmentPayment", back_populates="appointment")

class AppointmentPayment(Base):
    __tablename__ = "appointment_payments"

    id = Column(UUID(as_uuid=True), primary_key=True, server_default=text("gen_random_uuid()"))
    org_id = Column(UUID(as_uuid=True), ForeignKey("organizations.id"), nullable=False)
    appointment_id = Column(UUID(as_uuid=True), ForeignKey("appointments.id"), index=True, nullable=False)
    provider = Column(String, nullable=False, default="stripe")
    status = Column(
        SQLEnum(PaymentStatus, name="payment_status", values_callable=_enum_values),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    # One Checkout session maps to exactly one payment row
    stripe_checkout_session_id = Column(String, unique=True, nullable=True)
    stripe_payment_intent_id = Column(String, nullable=True)
    # A provider event is applied at most once
    stripe_event_id = Column(String, unique=True, nullable=True)
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    needs_reconciliation = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    appointment = relationship("Appointment", back_populates="payments")
