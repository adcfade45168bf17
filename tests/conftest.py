"""Shared test fixtures for barberbook tests."""

import copy
import itertools
import threading
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import pytest
import pytz
from postgrest.exceptions import APIError

from barberbook.core import supabase_client
from barberbook.core.config import settings
from barberbook.domain.appointments import HOLD_STATUSES, AppointmentStatus, compute_deposit_cents, is_blocking
from barberbook.services.availability import overlaps
from barberbook.utils.time import now_utc, parse_ts, to_iso

SAO_PAULO = pytz.timezone("America/Sao_Paulo")

# Column defaults the real tables fill in on insert
TABLE_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "appointments": {
        "unit_id": None,
        "customer_name": None,
        "hold_expires_at": None,
        "deposit_amount_cents": 0,
    },
    "appointment_payments": {
        "stripe_event_id": None,
        "stripe_payment_intent_id": None,
        "needs_reconciliation": False,
    },
}

UNIQUE_COLUMNS: Dict[str, List[str]] = {
    "appointment_payments": ["stripe_event_id", "stripe_checkout_session_id"],
    "messages": ["provider_message_id"],
}


def local(year, month, day, hour, minute=0) -> datetime:
    """Tenant-local (America/Sao_Paulo) aware datetime."""
    return SAO_PAULO.localize(datetime(year, month, day, hour, minute))


class FakeResponse:
    def __init__(self, data):
        self.data = data


def _comparable(value):
    if isinstance(value, str):
        try:
            return parse_ts(value)
        except ValueError:
            return value
    if isinstance(value, datetime):
        return parse_ts(value)
    return value


class FakeQuery:
    """Chainable subset of the PostgREST request builder, applied to in-memory rows."""

    def __init__(self, store: "FakeSupabase", table: str):
        self.store = store
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters: List[Callable[[Dict[str, Any]], bool]] = []
        self._order = None
        self._limit = None
        self._single = False

    # --- operations ---

    def select(self, *columns, **kwargs):
        self.op = "select"
        return self

    def insert(self, payload):
        self.op = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.op = "update"
        self.payload = payload
        return self

    # --- filters ---

    def eq(self, column, value):
        self.filters.append(lambda row: row.get(column) == value)
        return self

    def neq(self, column, value):
        self.filters.append(lambda row: row.get(column) != value)
        return self

    def in_(self, column, values):
        values = list(values)
        self.filters.append(lambda row: row.get(column) in values)
        return self

    def _compare(self, column, value, op):
        target = _comparable(value)

        def predicate(row):
            current = row.get(column)
            if current is None:
                return False
            return op(_comparable(current), target)

        self.filters.append(predicate)
        return self

    def lt(self, column, value):
        return self._compare(column, value, lambda a, b: a < b)

    def lte(self, column, value):
        return self._compare(column, value, lambda a, b: a <= b)

    def gt(self, column, value):
        return self._compare(column, value, lambda a, b: a > b)

    def gte(self, column, value):
        return self._compare(column, value, lambda a, b: a >= b)

    # --- modifiers ---

    def order(self, column, desc=False):
        self._order = (column, desc)
        return self

    def limit(self, size):
        self._limit = size
        return self

    def maybe_single(self):
        self._single = True
        return self

    def execute(self):
        with self.store.lock:
            if self.op == "insert":
                return FakeResponse(self.store.insert_rows(self.table, self.payload))
            if self.op == "update":
                return FakeResponse(self.store.update_rows(self.table, self.payload, self.filters))

            rows = [r for r in self.store.rows(self.table) if all(f(r) for f in self.filters)]
            if self._order:
                column, desc = self._order
                rows.sort(key=lambda r: _comparable(r.get(column)), reverse=desc)
            if self._limit is not None:
                rows = rows[: self._limit]
            rows = copy.deepcopy(rows)
            if self._single:
                return FakeResponse(rows[0]) if rows else None
            return FakeResponse(rows)


class FakeRpc:
    def __init__(self, fn, params):
        self.fn = fn
        self.params = params

    def execute(self):
        return self.fn(self.params)


class FakeSupabase:
    """In-memory stand-in for the Supabase client: table() query builder plus rpc()."""

    def __init__(self):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.lock = threading.RLock()
        self._clock = itertools.count()
        self._epoch = datetime(2024, 1, 1, tzinfo=pytz.utc)
        self.procedures = {"create_hold_appointment": self._create_hold_appointment}
        self.rpc_error: Optional[Exception] = None

    def table(self, name: str) -> FakeQuery:
        return FakeQuery(self, name)

    def rpc(self, name: str, params: Dict[str, Any]) -> FakeRpc:
        if self.rpc_error is not None:
            raise self.rpc_error
        return FakeRpc(self.procedures[name], params)

    def rows(self, name: str) -> List[Dict[str, Any]]:
        return self.tables.setdefault(name, [])

    def _created_at(self) -> str:
        # Strictly increasing so ordering by created_at is deterministic
        return to_iso(self._epoch + timedelta(microseconds=next(self._clock)))

    def _check_unique(self, name: str, candidate: Dict[str, Any], ignore_id=None):
        for column in UNIQUE_COLUMNS.get(name, []):
            value = candidate.get(column)
            if value is None:
                continue
            for row in self.rows(name):
                if row["id"] != ignore_id and row.get(column) == value:
                    raise APIError({
                        "message": f'duplicate key value violates unique constraint "{name}_{column}_key"',
                        "code": "23505",
                        "hint": None,
                        "details": None,
                    })

    def insert_rows(self, name: str, payload) -> List[Dict[str, Any]]:
        with self.lock:
            inserted = []
            for item in payload if isinstance(payload, list) else [payload]:
                row = dict(TABLE_DEFAULTS.get(name, {}))
                row.update(item)
                row.setdefault("id", str(uuid.uuid4()))
                row.setdefault("created_at", self._created_at())
                self._check_unique(name, row)
                self.rows(name).append(row)
                inserted.append(copy.deepcopy(row))
            return inserted

    def update_rows(self, name: str, changes: Dict[str, Any], filters) -> List[Dict[str, Any]]:
        with self.lock:
            matched = [r for r in self.rows(name) if all(f(r) for f in filters)]
            for row in matched:
                self._check_unique(name, {**row, **changes}, ignore_id=row["id"])
            for row in matched:
                row.update(changes)
            return copy.deepcopy(matched)

    def seed(self, _table: str, /, **values) -> Dict[str, Any]:
        # Positional-only so rows can carry a "name" column
        return self.insert_rows(_table, values)[0]

    def get(self, name: str, row_id: str) -> Optional[Dict[str, Any]]:
        for row in self.rows(name):
            if row["id"] == row_id:
                return copy.deepcopy(row)
        return None

    # --- stored procedures ---

    def _raise(self, message: str):
        raise APIError({"message": message, "code": "P0001", "hint": None, "details": None})

    def _create_hold_appointment(self, params: Dict[str, Any]) -> FakeResponse:
        with self.lock:
            org_id = params["_org_id"]
            service = next(
                (s for s in self.rows("services") if s["id"] == params["_service_id"] and s["org_id"] == org_id),
                None,
            )
            if service is None:
                self._raise("service_not_found")
            if not any(
                p["id"] == params["_professional_id"] and p["org_id"] == org_id
                for p in self.rows("professionals")
            ):
                self._raise("professional_not_found")

            starts_at = parse_ts(params["_starts_at"])
            ends_at = starts_at + timedelta(minutes=service["duration_min"])
            now = now_utc()

            existing = sorted(
                (
                    a for a in self.rows("appointments")
                    if a["org_id"] == org_id
                    and a["professional_id"] == params["_professional_id"]
                    and overlaps(starts_at, ends_at, parse_ts(a["starts_at"]), parse_ts(a["ends_at"]))
                    and is_blocking(a, now)
                ),
                key=lambda a: a["created_at"],
            )
            if existing:
                first = existing[0]
                if (
                    first["customer_phone"] == params["_phone"]
                    and parse_ts(first["starts_at"]) == starts_at
                    and parse_ts(first["ends_at"]) == ends_at
                    and AppointmentStatus(first["status"]) in HOLD_STATUSES
                ):
                    return FakeResponse(copy.deepcopy(first))
                self._raise("slot_unavailable")

            row = self.insert_rows("appointments", {
                "org_id": org_id,
                "unit_id": params.get("_unit_id"),
                "professional_id": params["_professional_id"],
                "service_id": params["_service_id"],
                "starts_at": to_iso(starts_at),
                "ends_at": to_iso(ends_at),
                "customer_phone": params["_phone"],
                "customer_name": params.get("_customer_name"),
                "status": AppointmentStatus.HOLD.value,
                "hold_expires_at": to_iso(now + timedelta(minutes=params.get("_hold_ttl_minutes") or 10)),
                "deposit_amount_cents": compute_deposit_cents(service["price_cents"], service["deposit_percent"]),
            })[0]
            return FakeResponse(row)


@pytest.fixture
def store(monkeypatch) -> FakeSupabase:
    """Fake Supabase installed as the process-wide client."""
    fake = FakeSupabase()
    monkeypatch.setattr(supabase_client, "_client", fake)
    return fake


@pytest.fixture
def tenant(store) -> Dict[str, Any]:
    return store.seed(
        "organizations",
        id=str(uuid.uuid4()),
        name="Barbearia do Zé",
        timezone="America/Sao_Paulo",
        whatsapp_instance_id=None,
    )


@pytest.fixture
def haircut(store, tenant) -> Dict[str, Any]:
    """30 minute service, R$ 50,00 with a 20% deposit."""
    return store.seed(
        "services",
        org_id=tenant["id"],
        name="Corte",
        duration_min=30,
        price_cents=5000,
        deposit_percent=20,
    )


@pytest.fixture
def long_service(store, tenant) -> Dict[str, Any]:
    """60 minute service."""
    return store.seed(
        "services",
        org_id=tenant["id"],
        name="Corte + Barba",
        duration_min=60,
        price_cents=8000,
        deposit_percent=30,
    )


@pytest.fixture
def barber(store, tenant) -> Dict[str, Any]:
    return store.seed("professionals", org_id=tenant["id"], name="João", phone=None)


@pytest.fixture
def make_appointment(store, tenant, haircut, barber):
    """Factory inserting an appointment row directly, bypassing the hold allocator."""

    def _make(
        starts_at: datetime,
        minutes: int = 30,
        status: AppointmentStatus = AppointmentStatus.CONFIRMED,
        hold_expires_at: Optional[datetime] = None,
        phone: str = "5511988887777",
        deposit_amount_cents: int = 1000,
    ) -> Dict[str, Any]:
        return store.seed(
            "appointments",
            org_id=tenant["id"],
            professional_id=barber["id"],
            service_id=haircut["id"],
            starts_at=to_iso(starts_at),
            ends_at=to_iso(starts_at + timedelta(minutes=minutes)),
            customer_phone=phone,
            status=AppointmentStatus(status).value,
            hold_expires_at=to_iso(hold_expires_at) if hold_expires_at else None,
            deposit_amount_cents=deposit_amount_cents,
        )

    return _make


@pytest.fixture
def stripe_settings(monkeypatch):
    monkeypatch.setattr(settings, "stripe_secret_key", "sk_test_barberbook")
    monkeypatch.setattr(settings, "stripe_webhook_secret", "whsec_barberbook")
    return settings
