"""
Booking operations exposed to the conversational agent.

Arguments coming from the model are validated against the same constraints as
the direct API calls before anything is dispatched. The tenant and the
customer's phone always come from the conversation, never from model output.
"""
import logging
from typing import Any, Dict, Optional, Type
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, ValidationError

from barberbook.core.errors import BookingError, InvalidToolArgs, PermissionDenied
from barberbook.domain.appointments import OrgRole
from barberbook.services.availability import AvailabilityService
from barberbook.services.catalog import CatalogService
from barberbook.services.holds import HoldService
from barberbook.services.lifecycle import LifecycleService
from barberbook.services.payments import PaymentService
from barberbook.utils.phone import normalize_whatsapp_phone

logger = logging.getLogger(__name__)


class ToolArgs(BaseModel):
    model_config = ConfigDict(extra="forbid")


class NoArgs(ToolArgs):
    pass


class DateRange(ToolArgs):
    from_: AwareDatetime = Field(alias="from")
    to: AwareDatetime


class GetAvailableSlotsArgs(ToolArgs):
    professional_id: UUID
    service_id: UUID
    date_range: DateRange


class CreateHoldArgs(ToolArgs):
    service_id: UUID
    professional_id: UUID
    unit_id: Optional[UUID] = None
    starts_at: AwareDatetime
    customer_name: Optional[str] = Field(default=None, max_length=120)


class AppointmentArgs(ToolArgs):
    appointment_id: UUID


TOOL_SCHEMAS: Dict[str, Type[ToolArgs]] = {
    "list_services": NoArgs,
    "list_units": NoArgs,
    "list_professionals": NoArgs,
    "get_available_slots": GetAvailableSlotsArgs,
    "create_hold_appointment": CreateHoldArgs,
    "create_payment_link": AppointmentArgs,
    "cancel_appointment": AppointmentArgs,
}

TOOL_DESCRIPTIONS: Dict[str, str] = {
    "list_services": "Lists the barbershop's services with price, duration and deposit percentage.",
    "list_units": "Lists the barbershop's units (addresses).",
    "list_professionals": "Lists the barbers.",
    "get_available_slots": "Suggests up to 3 free start times for a barber and service within a date range.",
    "create_hold_appointment": "Reserves the chosen slot for ~10 minutes while the customer pays the deposit (anti-overbooking).",
    "create_payment_link": "Creates the Stripe Checkout link to pay the deposit of a held appointment.",
    "cancel_appointment": "Cancels one of this customer's appointments.",
}


def validate_tool_args(name: str, args: Any) -> ToolArgs:
    schema = TOOL_SCHEMAS.get(name)
    if schema is None:
        raise InvalidToolArgs(f"unknown tool {name}")
    try:
        return schema.model_validate(args or {})
    except ValidationError as e:
        logger.info(f"Invalid arguments for tool {name}: {e.errors()}")
        raise InvalidToolArgs() from e


class BookingTools:
    """Dispatches validated tool calls for one conversation (tenant + customer phone)."""

    def __init__(self, tenant_id: str, phone: str, client=None):
        self.tenant_id = tenant_id
        self.phone = normalize_whatsapp_phone(phone)
        self.catalog = CatalogService(client)
        self.availability = AvailabilityService(client)
        self.holds = HoldService(client)
        self.lifecycle = LifecycleService(client)
        self.payments = PaymentService(client)

    async def run(self, name: str, args: Any) -> Any:
        parsed = validate_tool_args(name, args)
        handler = getattr(self, f"_{name}")
        return await handler(parsed)

    async def run_safely(self, name: str, args: Any) -> Any:
        """Like run(), but failures come back as {"error": code} for the model."""
        try:
            return await self.run(name, args)
        except BookingError as e:
            logger.info(f"Tool {name} failed for tenant {self.tenant_id}: {e.code}")
            return {"error": e.code}
        except Exception as e:
            logger.exception(f"Tool {name} crashed for tenant {self.tenant_id}: {e}")
            return {"error": "tool_failed"}

    async def _list_services(self, args: NoArgs):
        return await self.catalog.list_services(self.tenant_id)

    async def _list_units(self, args: NoArgs):
        return await self.catalog.list_units(self.tenant_id)

    async def _list_professionals(self, args: NoArgs):
        return await self.catalog.list_professionals(self.tenant_id)

    async def _get_available_slots(self, args: GetAvailableSlotsArgs):
        slots = await self.availability.get_available_slots(
            self.tenant_id,
            str(args.professional_id),
            str(args.service_id),
            args.date_range.from_,
            args.date_range.to,
        )
        return [slot.as_dict() for slot in slots]

    async def _create_hold_appointment(self, args: CreateHoldArgs):
        hold = await self.holds.create_hold(
            tenant_id=self.tenant_id,
            phone=self.phone,
            service_id=str(args.service_id),
            professional_id=str(args.professional_id),
            starts_at=args.starts_at,
            unit_id=str(args.unit_id) if args.unit_id else None,
            customer_name=args.customer_name,
        )
        return {
            "appointment_id": hold["id"],
            "starts_at": hold["starts_at"],
            "ends_at": hold["ends_at"],
            "hold_expires_at": hold["hold_expires_at"],
            "deposit_amount_cents": hold["deposit_amount_cents"],
        }

    async def _create_payment_link(self, args: AppointmentArgs):
        await self._own_appointment(str(args.appointment_id))
        link = await self.payments.create_checkout(self.tenant_id, str(args.appointment_id))
        return {"url": link.url}

    async def _cancel_appointment(self, args: AppointmentArgs):
        await self._own_appointment(str(args.appointment_id))
        # The agent acts for the tenant, restricted to the customer's own bookings
        canceled = await self.lifecycle.cancel(self.tenant_id, str(args.appointment_id), OrgRole.TENANT_ADMIN)
        return {"ok": True, "status": canceled["status"]}

    async def _own_appointment(self, appointment_id: str) -> Dict[str, Any]:
        appointment = await self.lifecycle.get(self.tenant_id, appointment_id)
        if appointment["customer_phone"] != self.phone:
            raise PermissionDenied()
        return appointment


def tool_json_schema(name: str) -> Dict[str, Any]:
    """JSON schema handed to the model for a tool."""
    return TOOL_SCHEMAS[name].model_json_schema(by_alias=True)
