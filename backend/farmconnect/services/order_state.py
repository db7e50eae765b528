"""Order state machine — validates and applies order status transitions.

Every status change goes through `transition_order`, which:

  1. checks the (current, requested) pair against TRANSITIONS,
  2. checks that the actor is the party allowed to make that move,
  3. appends a status entry and writes the new status with a
     compare-and-swap on `Order.revision`, retrying on a lost race,
  4. on `delivered`, writes payout intents in the same transaction and
     dispatches them best-effort.

`status_history` is append-only and its last entry always matches
`status`.

Setting ALLOW_DIRECT_TRANSIT=true additionally permits
confirmed → in_transit for clients that do not track pick-up separately.
"""

import logging
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from farmconnect.auth.principal import SYSTEM_KIND, Principal
from farmconnect.config import settings
from farmconnect.middleware.exceptions import (
    ConcurrentUpdateError,
    InvalidRequestError,
    InvalidTransitionError,
    PermissionDeniedError,
    ResourceNotFoundError,
)
from farmconnect.models.order import Order, OrderItem, OrderStatus
from farmconnect.models.profile import Farmer, Market, ProfileKind, Transporter
from farmconnect.services.payouts import dispatch_pending_payouts, queue_order_payouts

logger = logging.getLogger(__name__)

FARMER = ProfileKind.FARMER.value
TRANSPORTER = ProfileKind.TRANSPORTER.value

# (from, to) → actor kinds allowed to make the move
TRANSITIONS: dict[tuple[OrderStatus, OrderStatus], frozenset[str]] = {
    (OrderStatus.PENDING, OrderStatus.CONFIRMED): frozenset({FARMER, SYSTEM_KIND}),
    (OrderStatus.PENDING, OrderStatus.CANCELLED): frozenset({FARMER}),
    (OrderStatus.CONFIRMED, OrderStatus.PICKED_UP): frozenset({TRANSPORTER}),
    (OrderStatus.PICKED_UP, OrderStatus.IN_TRANSIT): frozenset({TRANSPORTER}),
    (OrderStatus.IN_TRANSIT, OrderStatus.DELIVERED): frozenset({TRANSPORTER}),
}

DIRECT_TRANSIT = {
    (OrderStatus.CONFIRMED, OrderStatus.IN_TRANSIT): frozenset({TRANSPORTER}),
}


def allowed_transitions() -> dict[tuple[OrderStatus, OrderStatus], frozenset[str]]:
    if settings.allow_direct_transit:
        return {**TRANSITIONS, **DIRECT_TRANSIT}
    return TRANSITIONS


def status_entry(
    status: OrderStatus,
    actor_id: str | None = None,
    note: str | None = None,
) -> dict:
    return {
        "status": status.value,
        "timestamp": datetime.utcnow().isoformat(),
        "actor_id": actor_id,
        "note": note,
    }


def check_transition(
    order: Order,
    new_status: OrderStatus,
    actor: Principal,
    transporter_id: str | None = None,
) -> None:
    """Raise if `actor` may not move `order` to `new_status`."""
    current = OrderStatus(order.status)
    allowed_kinds = allowed_transitions().get((current, new_status))
    if allowed_kinds is None:
        raise InvalidTransitionError(current.value, new_status.value)

    if actor.kind not in allowed_kinds:
        raise PermissionDeniedError(
            f"A {actor.kind} cannot move an order from {current.value} to {new_status.value}"
        )
    if actor.kind == FARMER and actor.id != order.farmer_id:
        raise PermissionDeniedError("Only the order's farmer can do this")
    if actor.kind == TRANSPORTER and (
        not order.transporter_id or actor.id != order.transporter_id
    ):
        raise PermissionDeniedError("Only the assigned transporter can do this")

    if transporter_id and (current, new_status) != (OrderStatus.PENDING, OrderStatus.CONFIRMED):
        raise InvalidRequestError("A transporter can only be assigned when confirming an order")


# ── Reads ────────────────────────────────────────────────────

async def load_order(db: AsyncSession, order_id: str) -> Order | None:
    """Fresh read, bypassing any stale copy in the session."""
    result = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def get_order(db: AsyncSession, order_id: str) -> Order:
    order = await load_order(db, order_id)
    if not order:
        raise ResourceNotFoundError("Order", order_id)
    return order


async def list_orders_for(db: AsyncSession, principal: Principal) -> list[Order]:
    """Orders visible to a market, farmer or transporter, newest first."""
    columns = {
        ProfileKind.MARKET.value: Order.market_id,
        ProfileKind.FARMER.value: Order.farmer_id,
        ProfileKind.TRANSPORTER.value: Order.transporter_id,
    }
    column = columns.get(principal.kind)
    if column is None:
        return []
    result = await db.execute(
        select(Order)
        .where(column == principal.id)
        .order_by(Order.created_at.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


# ── Writes ───────────────────────────────────────────────────

async def create_order(
    db: AsyncSession,
    *,
    market_id: str,
    farmer_id: str,
    items: list[dict],
    transport_cost: float = 0.0,
    distance_km: float | None = None,
    transporter_id: str | None = None,
    currency: str | None = None,
    pickup_address: str | None = None,
    delivery_address: str | None = None,
    delivery_date=None,
    delivery_time: str | None = None,
    notes: str | None = None,
) -> Order:
    """Create an order in `pending` with its line items.

    `total_amount` is the produce subtotal plus `transport_cost`.
    """
    if not items:
        raise InvalidRequestError("An order needs at least one item")

    for model, identifier, label in (
        (Market, market_id, "Market"),
        (Farmer, farmer_id, "Farmer"),
        (Transporter, transporter_id, "Transporter"),
    ):
        if identifier is None:
            continue
        result = await db.execute(select(model.id).where(model.id == identifier))
        if not result.scalar_one_or_none():
            raise ResourceNotFoundError(label, identifier)

    line_items = [
        OrderItem(
            produce_id=item["produce_id"],
            quantity=item["quantity"],
            unit_price=item["unit_price"],
            total_price=round(item["quantity"] * item["unit_price"], 2),
        )
        for item in items
    ]
    subtotal = sum(li.total_price for li in line_items)
    transport_cost = transport_cost or 0.0

    order = Order(
        market_id=market_id,
        farmer_id=farmer_id,
        transporter_id=transporter_id,
        status=OrderStatus.PENDING.value,
        status_history=[status_entry(OrderStatus.PENDING, actor_id=market_id)],
        revision=0,
        currency=(currency or settings.default_currency).upper(),
        total_amount=round(subtotal + transport_cost, 2),
        transport_cost=transport_cost,
        distance_km=distance_km,
        pickup_address=pickup_address,
        delivery_address=delivery_address,
        delivery_date=delivery_date,
        delivery_time=delivery_time,
        notes=notes,
    )
    db.add(order)
    await db.flush()

    for li in line_items:
        li.order_id = order.id
        db.add(li)
    await db.flush()

    logger.info("Order %s created by market %s (total %.2f)", order.id, market_id, order.total_amount)
    return await get_order(db, order.id)


async def compare_and_set_status(
    db: AsyncSession,
    order_id: str,
    expected_revision: int,
    values: dict,
) -> bool:
    """Write `values` only if the order is still at `expected_revision`."""
    result = await db.execute(
        update(Order)
        .where(Order.id == order_id, Order.revision == expected_revision)
        .values(revision=expected_revision + 1, updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def transition_order(
    db: AsyncSession,
    order_id: str,
    new_status: OrderStatus | str,
    actor: Principal,
    note: str | None = None,
    transporter_id: str | None = None,
) -> Order:
    """Move an order to `new_status` on behalf of `actor`.

    Raises:
        ResourceNotFoundError: no such order
        InvalidTransitionError: the move is not in the transition table
        PermissionDeniedError: the actor is not the required party
        ConcurrentUpdateError: the order kept changing underneath us
    """
    try:
        new_status = OrderStatus(new_status)
    except ValueError:
        raise InvalidRequestError(f"Unknown order status: {new_status}")

    if transporter_id:
        result = await db.execute(select(Transporter.id).where(Transporter.id == transporter_id))
        if not result.scalar_one_or_none():
            raise ResourceNotFoundError("Transporter", transporter_id)

    for attempt in range(1, settings.transition_max_retries + 1):
        order = await get_order(db, order_id)
        check_transition(order, new_status, actor, transporter_id)

        history = list(order.status_history or [])
        history.append(status_entry(new_status, actor_id=actor.id, note=note))
        values = {"status": new_status.value, "status_history": history}
        if transporter_id:
            values["transporter_id"] = transporter_id

        if await compare_and_set_status(db, order_id, order.revision, values):
            break

        logger.warning(
            "Order %s changed during %s transition (attempt %d/%d)",
            order_id, new_status.value, attempt, settings.transition_max_retries,
        )
    else:
        raise ConcurrentUpdateError(order_id)

    logger.info(
        "Order %s moved to %s by %s %s",
        order_id, new_status.value, actor.kind, actor.id or "-",
    )

    if new_status == OrderStatus.DELIVERED:
        order = await get_order(db, order_id)
        await queue_order_payouts(db, order)
        await dispatch_pending_payouts(db, order_id=order_id)

    return await get_order(db, order_id)


ASSIGNABLE_STATUSES = frozenset({OrderStatus.PENDING.value, OrderStatus.CONFIRMED.value})


async def assign_transporter(
    db: AsyncSession,
    order_id: str,
    transporter_id: str,
    actor: Principal,
) -> Order:
    """Set the transporter of a pending or confirmed order without moving it.

    Covers orders confirmed by a payment before anyone picked a
    transporter.  Only the order's farmer may assign, and only until the
    goods are picked up.  Reassigning to the same transporter is a no-op.
    """
    if actor.kind != FARMER:
        raise PermissionDeniedError("Only the order's farmer can assign a transporter")

    result = await db.execute(select(Transporter.id).where(Transporter.id == transporter_id))
    if not result.scalar_one_or_none():
        raise ResourceNotFoundError("Transporter", transporter_id)

    for attempt in range(1, settings.transition_max_retries + 1):
        order = await get_order(db, order_id)
        if actor.id != order.farmer_id:
            raise PermissionDeniedError("Only the order's farmer can do this")
        if order.status not in ASSIGNABLE_STATUSES:
            raise InvalidRequestError(
                f"A transporter cannot be assigned to a {order.status} order"
            )
        if order.transporter_id == transporter_id:
            return order

        if await compare_and_set_status(
            db, order_id, order.revision, {"transporter_id": transporter_id}
        ):
            break

        logger.warning(
            "Order %s changed during transporter assignment (attempt %d/%d)",
            order_id, attempt, settings.transition_max_retries,
        )
    else:
        raise ConcurrentUpdateError(order_id)

    logger.info("Order %s assigned to transporter %s", order_id, transporter_id)
    return await get_order(db, order_id)
