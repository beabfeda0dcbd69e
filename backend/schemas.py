from __future__ import annotations
from typing import Literal, Optional
from pydantic import BaseModel, Field

# Each record class => one collection, lowercased snake name

Category = Literal["Oud", "Perfume", "Musk", "Oil", "Lotion", "Dukhoon"]
OrderStatus = Literal["waiting", "prepared", "shipped", "delivered", "canceled"]
PaymentMethod = Literal["Cash", "Card"]
FulfillmentMethod = Literal["pickup", "delivery"]
Language = Literal["en", "ar"]

ORDER_STATUSES: tuple[str, ...] = ("waiting", "prepared", "shipped", "delivered", "canceled")


class Product(BaseModel):
    id: Optional[str] = None
    name_en: str
    name_ar: str
    price: float = Field(ge=0)
    image: Optional[str] = None
    store_id: Optional[str] = None
    category: Category = "Perfume"
    stock: int = Field(ge=0, default=0)

    def name(self, lang: str = "en") -> str:
        return self.name_ar if lang == "ar" else self.name_en


class Store(BaseModel):
    id: Optional[str] = None
    name_en: str
    name_ar: str
    image: Optional[str] = None
    product_count: int = 0


class Coupon(BaseModel):
    id: Optional[str] = None
    code: str
    discount_percent: float = Field(gt=0, le=100)
    active: bool = True
    usage_limit: int = Field(ge=1, default=1)
    times_used: int = Field(ge=0, default=0)

    @property
    def is_exhausted(self) -> bool:
        return self.times_used >= self.usage_limit


class Location(BaseModel):
    id: Optional[str] = None
    emirate_en: str
    emirate_ar: Optional[str] = None
    city: str
    cost: float = Field(ge=0, default=0)


class OrderItem(BaseModel):
    order_id: str
    product_id: Optional[str] = None
    product_name: str
    price: float
    quantity: int = Field(ge=1)


class Order(BaseModel):
    id: Optional[str] = None
    user_id: Optional[str] = None
    customer_email: str
    customer_phone: str
    total_amount: int
    delivery_fee: float = 0
    method: PaymentMethod
    address: str
    is_gift: bool = False
    notes: str = ""
    coupon_code: Optional[str] = None
    status: OrderStatus = "waiting"
    items: list[OrderItem] = []


class ProfileIn(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    emirate: Optional[str] = None
    city: Optional[str] = None
    street: Optional[str] = None
    extra_info: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None


class Profile(ProfileIn):
    user_id: str


class Workshop(BaseModel):
    id: Optional[str] = None
    slug: str
    name_en: str = ""
    name_ar: str = ""
    date: str = ""
    date_ar: str = ""
    time: str = ""
    time_ar: str = ""
    details_en: str = ""
    details_ar: str = ""
    image: Optional[str] = None
    link: Optional[str] = None
    available: bool = True


class Subscriber(BaseModel):
    id: Optional[str] = None
    email: str
    phone: Optional[str] = None


# Request bodies

class CartMirrorLine(BaseModel):
    product_id: str
    quantity: int = Field(ge=1, default=1)


class CartMirrorIn(BaseModel):
    items: list[CartMirrorLine] = []


class WorkshopIn(BaseModel):
    name_en: Optional[str] = None
    name_ar: Optional[str] = None
    date: Optional[str] = None
    date_ar: Optional[str] = None
    time: Optional[str] = None
    time_ar: Optional[str] = None
    details_en: Optional[str] = None
    details_ar: Optional[str] = None
    image: Optional[str] = None
    link: Optional[str] = None
    available: Optional[bool] = None


class AddItemIn(BaseModel):
    product_id: str
    quantity: int = Field(ge=1, default=1)


class CouponIn(BaseModel):
    code: str


class GiftIn(BaseModel):
    note: Optional[str] = None


class CheckoutFieldsIn(BaseModel):
    method: Optional[FulfillmentMethod] = None
    emirate: Optional[str] = None
    city: Optional[str] = None
    street: Optional[str] = None
    villa: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    notes: Optional[str] = None


class SubmitIn(BaseModel):
    save_to_profile: bool = True
    lang: Language = "en"


class StatusIn(BaseModel):
    status: OrderStatus


class CouponCreate(BaseModel):
    code: str
    discount_percent: float = Field(gt=0, le=100, default=5)
    usage_limit: int = Field(ge=1, default=1)
    active: bool = True


class LocationCostIn(BaseModel):
    cost: float = Field(ge=0)


class BulkCostIn(BaseModel):
    emirate: str
    cost: float = Field(ge=0)


class SubscribeIn(BaseModel):
    email: str
    phone: Optional[str] = None


class NewsletterIn(BaseModel):
    subject: str
    message: str


class PreviewEmailIn(NewsletterIn):
    to_email: str
