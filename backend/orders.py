from __future__ import annotations
import logging
from typing import Optional

from backend.cart import CartLineItem
from backend.config import settings
from backend.database import DataStore, load, load_all
from backend.errors import (
    CheckoutValidationError,
    EmptyCart,
    NotFound,
    OrderNotCancelable,
    RemoteCallFailure,
)
from backend.schemas import Location, Order, OrderItem
from backend.session import ShopSession

logger = logging.getLogger(__name__)

PICKUP_ADDRESS = "Pickup from Store"


def map_link(lat: float, lng: float) -> str:
    return f"https://www.google.com/maps?q={lat},{lng}"


def format_address(session: ShopSession) -> str:
    form = session.flow.form
    if not form.is_delivery:
        return PICKUP_ADDRESS
    return f"{form.emirate}, {form.city}, {form.street}, Villa/Apt: {form.villa}"


def format_notes(session: ShopSession) -> str:
    form = session.flow.form
    parts = [p for p in (form.notes, session.gift_note) if p]
    if form.is_delivery:
        parts.append(f"Map: {map_link(form.lat, form.lng)}")
    return "\n".join(parts)


def receipt_link(session: ShopSession) -> str:
    form = session.flow.form
    return map_link(form.lat, form.lng) if form.is_delivery else settings.STORE_SITE_URL


class OrderService:
    def __init__(self, store: DataStore):
        self.store = store

    async def _locations(self) -> list[Location]:
        return load_all(Location, await self.store.find("location"))

    async def submit(
        self,
        session: ShopSession,
        user_id: Optional[str] = None,
        save_to_profile: bool = True,
        lang: str = "en",
    ) -> Order:
        if session.cart.is_empty:
            raise EmptyCart()
        errors = session.flow.ready_to_submit()
        if errors:
            raise CheckoutValidationError(errors)

        token = session.submission.begin()
        try:
            order = await self._write_order(session, session.cart.line_items(), user_id, lang)
            if user_id and save_to_profile and session.flow.form.is_delivery:
                try:
                    await self._save_address(session, user_id)
                except RemoteCallFailure:
                    # the order is already stored; a lost address update must not
                    # leave the cart in place for a second submission
                    logger.warning("saving address for %s after order %s failed", user_id, order.id)
        finally:
            session.submission.finish(token)

        logger.info("order %s submitted (%d items, total %s)", order.id, len(order.items), order.total_amount)
        session.cart.clear()
        session.applied_coupon = None
        session.remove_gift()
        session.flow.close()
        return order

    async def _write_order(
        self,
        session: ShopSession,
        lines: list[CartLineItem],
        user_id: Optional[str],
        lang: str,
    ) -> Order:
        # ``lines`` is taken before the first await; totals and items both come from it
        form = session.flow.form
        totals = session.totals(await self._locations(), lines)
        header = {
            "user_id": user_id,
            "customer_email": form.email,
            "customer_phone": form.phone,
            "total_amount": totals.total,
            "delivery_fee": totals.delivery_fee,
            "method": form.payment_method,
            "address": format_address(session),
            "is_gift": session.is_gift,
            "notes": format_notes(session),
            "coupon_code": session.applied_coupon.code if session.applied_coupon else None,
            "status": "waiting",
        }
        saved = await self.store.insert("order", header)
        order_id = saved.get("id")
        if not order_id:
            raise RemoteCallFailure()

        items = [
            OrderItem(
                order_id=order_id,
                product_id=line.product_id or None,
                product_name=line.product.name(lang),
                price=line.price,
                quantity=line.quantity,
            )
            for line in lines
        ]
        try:
            await self.store.insert_many("order_item", [i.model_dump() for i in items])
        except RemoteCallFailure:
            # Without its items the header is useless to the back office
            logger.warning("line items for order %s failed, removing header", order_id)
            await self.store.delete("order", {"id": order_id})
            raise

        order = load(Order, saved)
        order.items = items
        return order

    async def _save_address(self, session: ShopSession, user_id: str) -> None:
        form = session.flow.form
        await self.store.upsert(
            "profile",
            {"user_id": user_id},
            {
                "user_id": user_id,
                "emirate": form.emirate,
                "city": form.city,
                "street": form.street,
                "extra_info": form.villa,
                "lat": form.lat,
                "lng": form.lng,
            },
        )

    async def get_order(self, order_id: str) -> Order:
        doc = await self.store.find_one("order", {"id": order_id})
        if doc is None:
            raise NotFound("Order not found")
        order = load(Order, doc)
        order.items = load_all(OrderItem, await self.store.find("order_item", {"order_id": order_id}))
        return order

    async def list_orders(self, user_id: Optional[str] = None) -> list[Order]:
        filt = {"user_id": user_id} if user_id else {}
        orders = load_all(Order, await self.store.find("order", filt, sort=[("created_at", -1)]))
        for order in orders:
            order.items = load_all(OrderItem, await self.store.find("order_item", {"order_id": order.id}))
        return orders

    async def cancel_order(self, order_id: str, user_id: Optional[str]) -> Order:
        order = await self.get_order(order_id)
        if order.user_id is None or order.user_id != user_id:
            raise NotFound("Order not found")
        if order.status != "waiting":
            raise OrderNotCancelable()
        await self.store.update("order", {"id": order_id}, {"status": "canceled"})
        order.status = "canceled"
        return order

    async def update_status(self, order_id: str, status: str) -> Order:
        order = await self.get_order(order_id)
        await self.store.update("order", {"id": order_id}, {"status": status})
        order.status = status
        logger.info("order %s moved to %s", order_id, status)
        return order

    async def delete_order(self, order_id: str) -> None:
        removed = await self.store.delete("order", {"id": order_id})
        if not removed:
            raise NotFound("Order not found")
        await self.store.delete("order_item", {"order_id": order_id})
