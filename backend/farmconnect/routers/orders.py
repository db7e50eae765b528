"""Order endpoints.

Endpoints:
    POST /api/orders               Market places an order (pending)
    GET  /api/orders               Orders of the calling profile
    GET  /api/orders/{id}          One order (parties only)
    POST /api/orders/{id}/status   Status transition through the state machine
    POST /api/orders/{id}/transporter  Farmer assigns a transporter (no status change)
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from farmconnect.auth.deps import get_current_principal, require_kind
from farmconnect.auth.principal import Principal
from farmconnect.database import get_db
from farmconnect.middleware.exceptions import PermissionDeniedError
from farmconnect.models.order import Order
from farmconnect.models.profile import ProfileKind
from farmconnect.schemas.order import OrderCreate, OrderOut, StatusUpdate, TransporterAssign
from farmconnect.services.order_state import (
    assign_transporter,
    create_order,
    get_order,
    list_orders_for,
    transition_order,
)

router = APIRouter()


def _ensure_party(order: Order, principal: Principal) -> None:
    if principal.id not in (order.market_id, order.farmer_id, order.transporter_id):
        raise PermissionDeniedError("You are not a party to this order")


@router.post("", response_model=OrderOut, status_code=status.HTTP_201_CREATED)
async def place_order(
    body: OrderCreate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_kind(ProfileKind.MARKET)),
):
    return await create_order(
        db,
        market_id=principal.id,
        farmer_id=body.farmer_id,
        items=[item.model_dump() for item in body.items],
        transport_cost=body.transport_cost,
        distance_km=body.distance_km,
        transporter_id=body.transporter_id,
        currency=body.currency,
        pickup_address=body.pickup_address,
        delivery_address=body.delivery_address,
        delivery_date=body.delivery_date,
        delivery_time=body.delivery_time,
        notes=body.notes,
    )


@router.get("", response_model=list[OrderOut])
async def list_orders(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return await list_orders_for(db, principal)


@router.get("/{order_id}", response_model=OrderOut)
async def read_order(
    order_id: str,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    order = await get_order(db, order_id)
    _ensure_party(order, principal)
    return order


@router.post("/{order_id}/status", response_model=OrderOut)
async def update_order_status(
    order_id: str,
    body: StatusUpdate,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Move an order along its lifecycle.  Who may do what is enforced by the state machine."""
    return await transition_order(
        db,
        order_id,
        body.status,
        principal,
        note=body.note,
        transporter_id=body.transporter_id,
    )


@router.post("/{order_id}/transporter", response_model=OrderOut)
async def set_order_transporter(
    order_id: str,
    body: TransporterAssign,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_kind(ProfileKind.FARMER)),
):
    return await assign_transporter(db, order_id, body.transporter_id, principal)
