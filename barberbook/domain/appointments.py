"""
Appointment status model.

hold and pending_payment are the two hold states; they end in confirmed,
expired or canceled. confirmed ends in completed, no_show or canceled.
draft is reserved for manual drafting and is never produced by the booking flow.
"""
import enum
from datetime import datetime
from typing import Any, Dict, FrozenSet, Optional

from barberbook.utils.time import parse_ts


class AppointmentStatus(str, enum.Enum):
    DRAFT = "draft"
    HOLD = "hold"
    PENDING_PAYMENT = "pending_payment"
    CONFIRMED = "confirmed"
    CANCELED = "canceled"
    EXPIRED = "expired"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


class OrgRole(str, enum.Enum):
    OWNER = "owner"
    TENANT_ADMIN = "tenant_admin"
    PROFESSIONAL = "professional"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"


HOLD_STATUSES: FrozenSet[AppointmentStatus] = frozenset({
    AppointmentStatus.HOLD,
    AppointmentStatus.PENDING_PAYMENT,
})

# Statuses that still represent an active booking and can be canceled
CANCELABLE_STATUSES: FrozenSet[AppointmentStatus] = HOLD_STATUSES | {AppointmentStatus.CONFIRMED}

ADMIN_ROLES: FrozenSet[OrgRole] = frozenset({OrgRole.OWNER, OrgRole.TENANT_ADMIN})

ALLOWED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.DRAFT: frozenset({AppointmentStatus.HOLD}),
    AppointmentStatus.HOLD: frozenset({
        AppointmentStatus.PENDING_PAYMENT,
        AppointmentStatus.EXPIRED,
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELED,
    }),
    AppointmentStatus.PENDING_PAYMENT: frozenset({
        AppointmentStatus.EXPIRED,
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELED,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.CANCELED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.CANCELED: frozenset(),
    AppointmentStatus.EXPIRED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

_LABELS = {
    AppointmentStatus.DRAFT: "Rascunho",
    AppointmentStatus.HOLD: "Reservado",
    AppointmentStatus.PENDING_PAYMENT: "Aguardando pagamento",
    AppointmentStatus.CONFIRMED: "Confirmado",
    AppointmentStatus.CANCELED: "Cancelado",
    AppointmentStatus.EXPIRED: "Expirado",
    AppointmentStatus.COMPLETED: "Concluído",
    AppointmentStatus.NO_SHOW: "No-show",
}


def status_label(status: AppointmentStatus) -> str:
    """Customer-facing (pt-BR) label for a status."""
    return _LABELS[AppointmentStatus(status)]


def can_transition(source: AppointmentStatus, target: AppointmentStatus) -> bool:
    return AppointmentStatus(target) in ALLOWED_TRANSITIONS[AppointmentStatus(source)]


def is_terminal(status: AppointmentStatus) -> bool:
    return not ALLOWED_TRANSITIONS[AppointmentStatus(status)]


def is_blocking(appointment: Dict[str, Any], now: datetime) -> bool:
    """
    Whether an appointment row occupies the calendar at ``now``.

    Holds are treated as logically expired once hold_expires_at has passed,
    whether or not the sweep already moved them to 'expired'.
    """
    status = AppointmentStatus(appointment["status"])
    if status == AppointmentStatus.CONFIRMED:
        return True
    if status in HOLD_STATUSES:
        expires_at: Optional[datetime] = parse_ts(appointment.get("hold_expires_at"))
        return expires_at is not None and expires_at > now
    return False


def compute_deposit_cents(price_cents: int, deposit_percent: int) -> int:
    """Deposit snapshot taken when the hold is created."""
    if price_cents <= 0 or deposit_percent <= 0:
        return 0
    # Round half up, same as Postgres round() on numeric
    return (price_cents * deposit_percent + 50) // 100
