from pydantic import BaseModel, Field, model_validator
from datetime import datetime
from decimal import Decimal
from typing import Optional
from app.domain.enums import OrderStatus, PaymentMethod, PaymentStatus, TicketStatus

# ---- Requests ----

class OrderItemCreate(BaseModel):
    product_id: str
    quantity: int = Field(gt=0)
    note: Optional[str] = Field(default=None, max_length=500)

class OrderCreate(BaseModel):
    code: Optional[str] = Field(default=None, min_length=1, max_length=50)
    customer_name: Optional[str] = Field(default=None, max_length=200)
    items: list[OrderItemCreate] = Field(min_length=1)
    pay_now: bool = False
    payment_method: Optional[PaymentMethod] = None

    @model_validator(mode="after")
    def _method_required_when_paying(self):
        if self.pay_now and self.payment_method is None:
            raise ValueError("payment_method is required when pay_now is true")
        return self

class PublicOrderCreate(BaseModel):
    establishment_slug: str = Field(min_length=1)
    code: str = Field(min_length=1, max_length=50)
    customer_name: Optional[str] = Field(default=None, max_length=200)
    items: list[OrderItemCreate] = Field(min_length=1)

class PaymentCreate(BaseModel):
    method: PaymentMethod
    # Omitted: see Settings.PAYMENT_DEFAULT_TO_REMAINING
    amount: Optional[Decimal] = Field(default=None, gt=0, max_digits=10, decimal_places=2)

class OrderStatusUpdate(BaseModel):
    status: OrderStatus

class TicketStatusUpdate(BaseModel):
    status: TicketStatus

class OrderFilter(BaseModel):
    status: Optional[OrderStatus] = None
    payment_status: Optional[PaymentStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    search: Optional[str] = None
    skip: int = 0
    limit: int = 100

class TicketFilter(BaseModel):
    status: Optional[TicketStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    limit: Optional[int] = None

# ---- Responses ----

class OrderItemRead(BaseModel):
    id: str
    product_id: str
    product_name: str
    quantity: int
    unit_price: float
    note: Optional[str] = None

    class Config:
        from_attributes = True

class PaymentRead(BaseModel):
    id: str
    method: str
    amount: float
    received_by: Optional[str] = None
    received_at: datetime

    class Config:
        from_attributes = True

class TicketSummary(BaseModel):
    id: str
    ticket_number: int
    status: str

    class Config:
        from_attributes = True

class OrderRead(BaseModel):
    id: str
    establishment_id: str
    code: Optional[str] = None
    customer_name: Optional[str] = None
    status: str
    payment_status: str
    total_amount: float
    paid_amount: float
    created_by: Optional[str] = None
    created_at: datetime
    closed_at: Optional[datetime] = None
    items: list[OrderItemRead]
    payments: list[PaymentRead] = []
    kitchen_tickets: list[TicketSummary] = []

    class Config:
        from_attributes = True

class TicketOrderRead(BaseModel):
    id: str
    code: Optional[str] = None
    customer_name: Optional[str] = None
    status: str
    created_by: Optional[str] = None
    items: list[OrderItemRead]

    class Config:
        from_attributes = True

class TicketRead(BaseModel):
    id: str
    order_id: str
    ticket_number: int
    status: str
    created_at: datetime
    updated_at: datetime
    order: TicketOrderRead

    class Config:
        from_attributes = True

class KitchenStats(BaseModel):
    queue: int
    preparing: int
    ready: int
    delivered: int  # today only
    average_time_minutes: int

class PublicOrderRead(BaseModel):
    id: str
    code: Optional[str] = None
    customer_name: Optional[str] = None
    status: str
    payment_status: str
    total_amount: float
    created_at: datetime
    items: list[OrderItemRead]

    class Config:
        from_attributes = True

class MenuProduct(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    category: Optional[str] = None
    image_url: Optional[str] = None
    price: float

    class Config:
        from_attributes = True

class MenuEstablishment(BaseModel):
    id: str
    name: str
    slug: str

    class Config:
        from_attributes = True

class MenuRead(BaseModel):
    establishment: MenuEstablishment
    products: list[MenuProduct]

class NotificationRead(BaseModel):
    id: str
    type: str
    establishment_id: str
    title: str
    message: str
    data: dict
    created_at: str
