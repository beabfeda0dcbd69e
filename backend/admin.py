from __future__ import annotations
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request

from backend import accounts
from backend.catalog import filter_products
from backend.config import settings
from backend.coupons import create_coupon, list_coupons
from backend.database import DataStore, get_store, load, load_all
from backend.errors import NotFound
from backend.notifications import EmailDispatcher, get_dispatcher, send_newsletter, send_test_email
from backend.orders import OrderService
from backend.schemas import (
    BulkCostIn,
    CouponCreate,
    Location,
    LocationCostIn,
    NewsletterIn,
    PreviewEmailIn,
    Product,
    StatusIn,
    Store,
    Workshop,
    WorkshopIn,
)
from backend.storage import ImageStorage, get_storage

logger = logging.getLogger(__name__)


def require_admin(x_admin_password: Optional[str] = Header(None)) -> None:
    if x_admin_password != settings.ADMIN_PASSWORD:
        raise HTTPException(status_code=401, detail="Admin password required")


router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


# Orders

@router.get("/orders")
async def admin_orders(store: DataStore = Depends(get_store)):
    return await OrderService(store).list_orders()


@router.put("/orders/{order_id}/status")
async def admin_order_status(order_id: str, payload: StatusIn, store: DataStore = Depends(get_store)):
    return await OrderService(store).update_status(order_id, payload.status)


@router.delete("/orders/{order_id}")
async def admin_delete_order(order_id: str, store: DataStore = Depends(get_store)):
    await OrderService(store).delete_order(order_id)
    return {"deleted": True}


# Coupons

@router.get("/coupons")
async def admin_coupons(store: DataStore = Depends(get_store)):
    return await list_coupons(store)


@router.post("/coupons")
async def admin_create_coupon(payload: CouponCreate, store: DataStore = Depends(get_store)):
    return await create_coupon(store, payload)


@router.delete("/coupons/{coupon_id}")
async def admin_delete_coupon(coupon_id: str, store: DataStore = Depends(get_store)):
    if not await store.delete("coupon", {"id": coupon_id}):
        raise NotFound("Coupon not found")
    return {"deleted": True}


# Delivery locations

@router.get("/locations")
async def admin_locations(q: Optional[str] = Query(None), store: DataStore = Depends(get_store)):
    locations = load_all(Location, await store.find("location", sort=[("emirate_en", 1)]))
    if q:
        locations = [loc for loc in locations if q.lower() in loc.city.lower()]
    return locations


@router.post("/locations")
async def admin_create_location(payload: Location, store: DataStore = Depends(get_store)):
    saved = await store.insert("location", payload.model_dump(exclude={"id"}))
    return load(Location, saved)


@router.put("/locations/{location_id}")
async def admin_location_cost(location_id: str, payload: LocationCostIn, store: DataStore = Depends(get_store)):
    if not await store.find_one("location", {"id": location_id}):
        raise NotFound("Location not found")
    await store.update("location", {"id": location_id}, {"cost": payload.cost})
    return {"id": location_id, "cost": payload.cost}


@router.put("/locations-bulk")
async def admin_bulk_cost(payload: BulkCostIn, store: DataStore = Depends(get_store)):
    updated = await store.update("location", {"emirate_en": payload.emirate}, {"cost": payload.cost})
    logger.info("delivery cost for %s set to %s on %d location(s)", payload.emirate, payload.cost, updated)
    return {"updated": updated}


# Catalog

@router.get("/products")
async def admin_products(
    q: Optional[str] = Query(None),
    store_id: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    sort: str = Query("name-asc"),
    store: DataStore = Depends(get_store),
):
    products = load_all(Product, await store.find("product"))
    return filter_products(products, q, store_id, category, sort)


@router.post("/products")
async def admin_create_product(payload: Product, store: DataStore = Depends(get_store)):
    saved = await store.insert("product", payload.model_dump(exclude={"id"}))
    return load(Product, saved)


@router.put("/products/{product_id}")
async def admin_update_product(product_id: str, payload: Product, store: DataStore = Depends(get_store)):
    if not await store.find_one("product", {"id": product_id}):
        raise NotFound("Product not found")
    await store.update("product", {"id": product_id}, payload.model_dump(exclude={"id"}))
    return payload.model_copy(update={"id": product_id})


@router.delete("/products/{product_id}")
async def admin_delete_product(product_id: str, store: DataStore = Depends(get_store)):
    if not await store.delete("product", {"id": product_id}):
        raise NotFound("Product not found")
    logger.info("product %s deleted", product_id)
    return {"deleted": True}


@router.post("/stores")
async def admin_create_store(payload: Store, store: DataStore = Depends(get_store)):
    saved = await store.insert("store", payload.model_dump(exclude={"id"}))
    return load(Store, saved)


@router.put("/stores/{store_id}")
async def admin_update_store(store_id: str, payload: Store, store: DataStore = Depends(get_store)):
    if not await store.find_one("store", {"id": store_id}):
        raise NotFound("Store not found")
    await store.update("store", {"id": store_id}, payload.model_dump(exclude={"id"}))
    return payload.model_copy(update={"id": store_id})


@router.post("/images")
async def admin_upload_image(
    request: Request,
    filename: str = Query(...),
    storage: ImageStorage = Depends(get_storage),
):
    data = await request.body()
    if not data:
        raise HTTPException(status_code=400, detail="Empty upload")
    url = await storage.upload(filename, data, request.headers.get("content-type"))
    return {"url": url}


# Workshops

@router.get("/workshops")
async def admin_workshops(store: DataStore = Depends(get_store)):
    return load_all(Workshop, await store.find("workshop", sort=[("slug", 1)]))


@router.put("/workshops/{slug}")
async def admin_update_workshop(slug: str, payload: WorkshopIn, store: DataStore = Depends(get_store)):
    updates = payload.model_dump(exclude_none=True)
    await store.upsert("workshop", {"slug": slug}, {**updates, "slug": slug})
    return load(Workshop, await store.find_one("workshop", {"slug": slug}))


# Newsletter

@router.get("/subscribers")
async def admin_subscribers(store: DataStore = Depends(get_store)):
    return await accounts.list_subscribers(store)


@router.delete("/subscribers/{subscriber_id}")
async def admin_delete_subscriber(subscriber_id: str, store: DataStore = Depends(get_store)):
    if not await store.delete("subscriber", {"id": subscriber_id}):
        raise NotFound("Subscriber not found")
    return {"deleted": True}


@router.post("/newsletter")
async def admin_newsletter(
    payload: NewsletterIn,
    store: DataStore = Depends(get_store),
    dispatcher: EmailDispatcher = Depends(get_dispatcher),
):
    if not payload.subject.strip() or not payload.message.strip():
        raise HTTPException(status_code=400, detail="Fill subject and message")
    sent = await send_newsletter(store, dispatcher, payload.subject, payload.message)
    return {"sent": sent}


@router.post("/newsletter/test")
async def admin_newsletter_test(payload: PreviewEmailIn, dispatcher: EmailDispatcher = Depends(get_dispatcher)):
    if not payload.subject.strip() or not payload.message.strip():
        raise HTTPException(status_code=400, detail="Write something first")
    await send_test_email(dispatcher, payload.to_email, payload.subject, payload.message)
    return {"sent": 1}
