from __future__ import annotations
import logging
import os
from typing import Any, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from backend import accounts
from backend.admin import router as admin_router
from backend.cart import Cart
from backend.catalog import cities_for, filter_products, stock_badge, unique_emirates
from backend.config import settings
from backend.coupons import CouponValidator
from backend.database import DataStore, get_store, load, load_all
from backend.errors import CheckoutValidationError, CouponInvalid, NotFound, RequestInFlight, ShopError
from backend.orders import OrderService, receipt_link
from backend.schemas import (
    AddItemIn,
    CheckoutFieldsIn,
    CartMirrorIn,
    CouponIn,
    GiftIn,
    Location,
    Product,
    Profile,
    ProfileIn,
    Store,
    SubmitIn,
    SubscribeIn,
    Workshop,
)
from backend.session import SessionRegistry, ShopSession
from backend.storage import ImageStorage, get_storage

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Zari Perfumes API")
app.state.sessions = SessionRegistry()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(admin_router)


@app.exception_handler(ShopError)
async def shop_error_handler(request: Request, exc: ShopError):
    content: dict[str, Any] = {"detail": exc.message}
    if isinstance(exc, CheckoutValidationError):
        content["fields"] = exc.fields
    return JSONResponse(status_code=exc.status_code, content=content)


# Dependencies

def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def _editable(sessions: SessionRegistry, session_id: str) -> ShopSession:
    session = sessions.get(session_id)
    # cart and totals are frozen while an order is being written
    if session.submission.busy:
        raise RequestInFlight("Order is being placed")
    return session


def current_user(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_user_id or None


def require_user(user_id: Optional[str] = Depends(current_user)) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="Sign in required")
    return user_id


async def _locations(store: DataStore) -> list[Location]:
    return load_all(Location, await store.find("location"))


async def _product(store: DataStore, product_id: str) -> Product:
    doc = await store.find_one("product", {"id": product_id})
    if doc is None:
        raise NotFound("Product not found")
    return load(Product, doc)


@app.get("/")
async def root():
    return {"message": "Zari Perfumes Backend Running"}


@app.get("/test")
async def test(store: DataStore = Depends(get_store)):
    try:
        products = await store.count("product")
        return {
            "backend": "✅ Running",
            "database": "✅ Available",
            "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
            "database_name": settings.DATABASE_NAME,
            "products": products,
        }
    except ShopError as e:
        return {"backend": "✅ Running", "database": "❌ Not Available", "error": e.message}


# Seed data: stores, house perfumes and UAE delivery zones

SEED_STORES: list[dict] = [
    {"name_en": "Zari Ajman", "name_ar": "زاري عجمان", "image": None},
    {"name_en": "Zari Sharjah", "name_ar": "زاري الشارقة", "image": None},
]

SEED_PRODUCTS: list[dict] = [
    {"name_en": "Royal Cambodi Oud", "name_ar": "عود كمبودي ملكي", "price": 320.0, "category": "Oud", "stock": 8},
    {"name_en": "Rose Taifi", "name_ar": "ورد طائفي", "price": 180.0, "category": "Perfume", "stock": 25},
    {"name_en": "White Musk", "name_ar": "مسك أبيض", "price": 60.0, "category": "Musk", "stock": 40},
    {"name_en": "Sandalwood Oil", "name_ar": "زيت الصندل", "price": 95.0, "category": "Oil", "stock": 3},
    {"name_en": "Amber Body Lotion", "name_ar": "لوشن العنبر", "price": 45.0, "category": "Lotion", "stock": 30},
    {"name_en": "Maamoul Dukhoon", "name_ar": "دخون معمول", "price": 75.0, "category": "Dukhoon", "stock": 15},
]

SEED_LOCATIONS: list[dict] = [
    {"emirate_en": "Ajman", "emirate_ar": "عجمان", "city": "Al Nuaimiya", "cost": 15},
    {"emirate_en": "Ajman", "emirate_ar": "عجمان", "city": "Al Rashidiya", "cost": 15},
    {"emirate_en": "Sharjah", "emirate_ar": "الشارقة", "city": "Al Majaz", "cost": 20},
    {"emirate_en": "Dubai", "emirate_ar": "دبي", "city": "Deira", "cost": 25},
    {"emirate_en": "Dubai", "emirate_ar": "دبي", "city": "Jumeirah", "cost": 30},
    {"emirate_en": "Abu Dhabi", "emirate_ar": "أبوظبي", "city": "Al Reem Island", "cost": 40},
]

# The storefront home page shows two workshop slots, w1 and w2
SEED_WORKSHOPS: list[dict] = [
    {"slug": "w1", "name_en": "Oud Blending", "name_ar": "تحضير العود", "available": False},
    {"slug": "w2", "name_en": "Perfume Layering", "name_ar": "دمج العطور", "available": False},
]


@app.post("/seed")
async def seed(store: DataStore = Depends(get_store)):
    if await store.count("product") > 0:
        return {"seeded": False, "message": "Products already exist"}
    store_ids = []
    for s in SEED_STORES:
        saved = await store.insert("store", Store(**s, product_count=len(SEED_PRODUCTS) // len(SEED_STORES)).model_dump(exclude={"id"}))
        store_ids.append(saved["id"])
    for i, p in enumerate(SEED_PRODUCTS):
        await store.insert("product", Product(**p, store_id=store_ids[i % len(store_ids)]).model_dump(exclude={"id"}))
    if await store.count("location") == 0:
        await store.insert_many("location", [Location(**loc).model_dump(exclude={"id"}) for loc in SEED_LOCATIONS])
    for w in SEED_WORKSHOPS:
        await store.upsert("workshop", {"slug": w["slug"]}, Workshop(**w).model_dump(exclude={"id"}))
    return {"seeded": True, "count": len(SEED_PRODUCTS)}


# Catalog

def product_to_client(product: Product) -> dict[str, Any]:
    return {**product.model_dump(), "badge": stock_badge(product)}


@app.get("/products")
async def get_products(
    q: Optional[str] = Query(None),
    store_id: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    sort: Optional[str] = Query(None),
    store: DataStore = Depends(get_store),
):
    products = load_all(Product, await store.find("product"))
    return [product_to_client(p) for p in filter_products(products, q, store_id, category, sort)]


@app.get("/products/{product_id}")
async def get_product(product_id: str, store: DataStore = Depends(get_store)):
    return product_to_client(await _product(store, product_id))


@app.get("/stores")
async def get_stores(store: DataStore = Depends(get_store)):
    return load_all(Store, await store.find("store"))


@app.get("/locations")
async def get_locations(store: DataStore = Depends(get_store)):
    return await _locations(store)


@app.get("/locations/emirates")
async def get_emirates(store: DataStore = Depends(get_store)):
    return unique_emirates(await _locations(store))


@app.get("/locations/cities")
async def get_cities(emirate: str = Query(...), store: DataStore = Depends(get_store)):
    return cities_for(await _locations(store), emirate)


@app.get("/images/{name}")
async def get_image(name: str, storage: ImageStorage = Depends(get_storage)):
    data, content_type = await storage.open(name)
    return Response(content=data, media_type=content_type or "application/octet-stream")


@app.post("/discount")
async def discount_check(payload: CouponIn, store: DataStore = Depends(get_store)):
    try:
        coupon = await CouponValidator(store).validate(payload.code)
    except CouponInvalid as e:
        return {"valid": False, "percent": 0, "message": e.message}
    return {"valid": True, "code": coupon.code, "percent": coupon.discount_percent}


# Cart

async def _cart_view(session: ShopSession, store: DataStore, **extra: Any) -> dict[str, Any]:
    return {**extra, **session.snapshot(await _locations(store))}


@app.get("/cart/{session_id}")
async def get_cart(session_id: str, sessions: SessionRegistry = Depends(get_sessions), store: DataStore = Depends(get_store)):
    return await _cart_view(sessions.get(session_id), store)


@app.post("/cart/{session_id}/items")
async def cart_add(
    session_id: str,
    item: AddItemIn,
    sessions: SessionRegistry = Depends(get_sessions),
    store: DataStore = Depends(get_store),
):
    session = _editable(sessions, session_id)
    product = await _product(store, item.product_id)
    session.cart.refresh_product(product)
    added = session.cart.add_item(product, item.quantity)
    return await _cart_view(session, store, added=added)


@app.post("/cart/{session_id}/items/{product_id}/increment")
async def cart_increment(
    session_id: str,
    product_id: str,
    sessions: SessionRegistry = Depends(get_sessions),
    store: DataStore = Depends(get_store),
):
    session = _editable(sessions, session_id)
    if product_id not in session.cart:
        raise NotFound("Item not in cart")
    # stock may have moved since the line was added
    session.cart.refresh_product(await _product(store, product_id))
    if product_id not in session.cart:
        return await _cart_view(session, store, at_max=True, removed=True)
    ok = session.cart.increment_quantity(product_id)
    return await _cart_view(session, store, at_max=not ok)


@app.post("/cart/{session_id}/items/{product_id}/decrement")
async def cart_decrement(
    session_id: str,
    product_id: str,
    sessions: SessionRegistry = Depends(get_sessions),
    store: DataStore = Depends(get_store),
):
    session = _editable(sessions, session_id)
    if not session.cart.decrement_quantity(product_id):
        raise NotFound("Item not in cart")
    return await _cart_view(session, store, removed=product_id not in session.cart)


@app.delete("/cart/{session_id}/items/{product_id}")
async def cart_remove(
    session_id: str,
    product_id: str,
    sessions: SessionRegistry = Depends(get_sessions),
    store: DataStore = Depends(get_store),
):
    session = _editable(sessions, session_id)
    removed = session.cart.remove_item(product_id)
    return await _cart_view(session, store, removed=removed)


@app.delete("/cart/{session_id}")
async def cart_clear(session_id: str, sessions: SessionRegistry = Depends(get_sessions), store: DataStore = Depends(get_store)):
    session = _editable(sessions, session_id)
    session.cart.clear()
    return await _cart_view(session, store)


@app.get("/cart/{session_id}/export")
async def cart_export(session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    return sessions.get(session_id).cart.to_dict()


@app.put("/cart/{session_id}/import")
async def cart_import(
    session_id: str,
    payload: CartMirrorIn,
    sessions: SessionRegistry = Depends(get_sessions),
    store: DataStore = Depends(get_store),
):
    session = _editable(sessions, session_id)
    products: dict[str, Product] = {}
    for line in payload.items:
        doc = await store.find_one("product", {"id": line.product_id})
        if doc is not None:
            products[line.product_id] = load(Product, doc)
    session.cart = Cart.from_lines(((line.product_id, line.quantity) for line in payload.items), products)
    return await _cart_view(session, store)


# Checkout

def _checkout_view(session: ShopSession) -> dict[str, Any]:
    return session.flow.state()


@app.post("/checkout/{session_id}/open")
async def checkout_open(
    session_id: str,
    sessions: SessionRegistry = Depends(get_sessions),
    store: DataStore = Depends(get_store),
    user_id: Optional[str] = Depends(current_user),
    x_user_email: Optional[str] = Header(None),
):
    session = sessions.get(session_id)
    profile = await accounts.get_profile(store, user_id) if user_id else None
    session.flow.open(session.cart, profile)
    if user_id:
        session.flow.prefill_contact(x_user_email, profile.phone if profile else None)
    return _checkout_view(session)


@app.patch("/checkout/{session_id}")
async def checkout_update(
    session_id: str,
    payload: CheckoutFieldsIn,
    sessions: SessionRegistry = Depends(get_sessions),
):
    session = sessions.get(session_id)
    session.flow.update(**payload.model_dump(exclude_unset=True))
    return _checkout_view(session)


@app.post("/checkout/{session_id}/advance")
async def checkout_advance(session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    session = sessions.get(session_id)
    session.flow.advance()
    return _checkout_view(session)


@app.post("/checkout/{session_id}/back")
async def checkout_back(session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    session = sessions.get(session_id)
    session.flow.back()
    return _checkout_view(session)


@app.post("/checkout/{session_id}/exit")
async def checkout_exit(session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    session = sessions.get(session_id)
    session.flow.request_exit()
    return _checkout_view(session)


@app.post("/checkout/{session_id}/exit/confirm")
async def checkout_exit_confirm(session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    session = sessions.get(session_id)
    session.flow.confirm_exit()
    return _checkout_view(session)


@app.post("/checkout/{session_id}/exit/cancel")
async def checkout_exit_cancel(session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    session = sessions.get(session_id)
    session.flow.cancel_exit()
    return _checkout_view(session)


@app.post("/checkout/{session_id}/coupon")
async def checkout_apply_coupon(
    session_id: str,
    payload: CouponIn,
    sessions: SessionRegistry = Depends(get_sessions),
    store: DataStore = Depends(get_store),
):
    session = _editable(sessions, session_id)
    session.applied_coupon = await CouponValidator(store).validate(payload.code)
    return await _cart_view(session, store)


@app.delete("/checkout/{session_id}/coupon")
async def checkout_remove_coupon(
    session_id: str,
    sessions: SessionRegistry = Depends(get_sessions),
    store: DataStore = Depends(get_store),
):
    session = _editable(sessions, session_id)
    session.applied_coupon = None
    return await _cart_view(session, store)


@app.put("/checkout/{session_id}/gift")
async def checkout_gift(
    session_id: str,
    payload: GiftIn,
    sessions: SessionRegistry = Depends(get_sessions),
    store: DataStore = Depends(get_store),
):
    session = _editable(sessions, session_id)
    session.set_gift_note(payload.note)
    return await _cart_view(session, store)


@app.delete("/checkout/{session_id}/gift")
async def checkout_remove_gift(
    session_id: str,
    sessions: SessionRegistry = Depends(get_sessions),
    store: DataStore = Depends(get_store),
):
    session = _editable(sessions, session_id)
    session.remove_gift()
    return await _cart_view(session, store)


@app.post("/checkout/{session_id}/submit")
async def checkout_submit(
    session_id: str,
    payload: SubmitIn,
    sessions: SessionRegistry = Depends(get_sessions),
    store: DataStore = Depends(get_store),
    user_id: Optional[str] = Depends(current_user),
):
    session = sessions.get(session_id)
    link = receipt_link(session)
    order = await OrderService(store).submit(session, user_id, payload.save_to_profile, payload.lang)
    sessions.drop(session_id)
    return {"order": order, "map_link": link}


@app.delete("/session/{session_id}")
async def end_session(session_id: str, sessions: SessionRegistry = Depends(get_sessions)):
    session = _editable(sessions, session_id)
    session.reset()
    sessions.drop(session_id)
    return {"ended": True}


# Workshops

@app.get("/workshops")
async def get_workshops(store: DataStore = Depends(get_store)):
    return [w for w in load_all(Workshop, await store.find("workshop")) if w.available]


@app.get("/workshops/{slug}")
async def get_workshop(slug: str, store: DataStore = Depends(get_store)):
    doc = await store.find_one("workshop", {"slug": slug})
    if doc is None:
        raise NotFound("Workshop not found")
    return load(Workshop, doc)


# Account

@app.get("/account/orders")
async def account_orders(user_id: str = Depends(require_user), store: DataStore = Depends(get_store)):
    return await OrderService(store).list_orders(user_id)


@app.post("/account/orders/{order_id}/cancel")
async def account_cancel_order(order_id: str, user_id: str = Depends(require_user), store: DataStore = Depends(get_store)):
    return await OrderService(store).cancel_order(order_id, user_id)


@app.get("/account/profile")
async def account_profile(user_id: str = Depends(require_user), store: DataStore = Depends(get_store)):
    profile = await accounts.get_profile(store, user_id)
    return profile or Profile(user_id=user_id)


@app.put("/account/profile")
async def account_save_profile(payload: ProfileIn, user_id: str = Depends(require_user), store: DataStore = Depends(get_store)):
    return await accounts.save_profile(store, Profile(user_id=user_id, **payload.model_dump()))


# Newsletter

@app.get("/newsletter")
async def newsletter_status(email: str = Query(...), store: DataStore = Depends(get_store)):
    return {"subscribed": await accounts.is_subscribed(store, email)}


@app.post("/newsletter")
async def newsletter_subscribe(payload: SubscribeIn, store: DataStore = Depends(get_store)):
    added = await accounts.subscribe(store, payload.email, payload.phone)
    return {"subscribed": True, "already_subscribed": not added}


@app.delete("/newsletter")
async def newsletter_unsubscribe(email: str = Query(...), store: DataStore = Depends(get_store)):
    return {"removed": await accounts.unsubscribe(store, email)}


@app.get("/unsubscribe/{token}")
async def unsubscribe_link(token: str, store: DataStore = Depends(get_store)):
    email = accounts.email_from_token(token)
    if not email:
        raise HTTPException(status_code=400, detail="Invalid link")
    return {"email": email, "removed": await accounts.unsubscribe(store, email)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", 8000)))
