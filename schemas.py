"""
Database Schemas for the Storefront

Each Pydantic model correlates to a collection. Collection names are fixed:
- Product -> "products"
- Order -> "orders"
- Admin -> "admins"
- SettingsDocument -> "settings" (single document)

The same models validate writes on both backends, so a record accepted by the
JSON files is accepted by MongoDB and the other way round.
"""

from pydantic import BaseModel, ConfigDict, Field, EmailStr, field_validator, model_validator
from typing import Optional, List, Literal

Size = Literal["XS", "S", "M", "L", "XL", "XXL"]
OrderStatus = Literal["pending", "confirmed", "processing", "shipped", "delivered", "cancelled"]
Role = Literal["admin", "super_admin"]


class Product(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, description="Product name")
    description: str = Field(..., min_length=1, description="Product description")
    price: float = Field(..., ge=0, description="List price")
    discountPercent: float = Field(0, ge=0, le=100, description="Discount in percent")
    images: List[str] = Field(..., min_length=1, description="Image URLs, first is the cover")
    category: str = Field(..., min_length=1, description="Free-form category")
    stock: int = Field(0, ge=0, description="Units in stock")
    sizes: List[Size] = Field(default_factory=list)
    colors: List[str] = Field(default_factory=list)
    featured: bool = Field(False, description="Shown on the home page")


class ProductUpdate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1)
    price: Optional[float] = Field(None, ge=0)
    discountPercent: Optional[float] = Field(None, ge=0, le=100)
    images: Optional[List[str]] = Field(None, min_length=1)
    category: Optional[str] = Field(None, min_length=1)
    stock: Optional[int] = Field(None, ge=0)
    sizes: Optional[List[Size]] = None
    colors: Optional[List[str]] = None
    featured: Optional[bool] = None


class Order(BaseModel):
    productId: str = Field(..., min_length=1, description="Referenced product id")
    orderCode: Optional[str] = None
    productName: Optional[str] = Field(None, description="Snapshot of the product name")
    productPrice: Optional[float] = Field(None, ge=0, description="Snapshot of the list price")
    quantity: int = Field(..., ge=1)
    customerName: str = Field(..., min_length=1)
    customerPhone: str = Field(..., min_length=1)
    customerEmail: Optional[str] = None
    notes: Optional[str] = None
    status: OrderStatus = "pending"
    totalAmount: float = Field(..., ge=0)


class OrderUpdate(BaseModel):
    productId: Optional[str] = Field(None, min_length=1)
    orderCode: Optional[str] = None
    productName: Optional[str] = None
    productPrice: Optional[float] = Field(None, ge=0)
    quantity: Optional[int] = Field(None, ge=1)
    customerName: Optional[str] = Field(None, min_length=1)
    customerPhone: Optional[str] = Field(None, min_length=1)
    customerEmail: Optional[str] = None
    notes: Optional[str] = None
    status: Optional[OrderStatus] = None
    totalAmount: Optional[float] = Field(None, ge=0)


class Admin(BaseModel):
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1, description="BCrypt password hash")
    email: EmailStr = Field(..., description="Email address")
    role: Role = "admin"

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        return v.strip()

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        return v.lower()


class AdminUpdate(BaseModel):
    password: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    role: Optional[Role] = None

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v else v


# Settings document

class _Section(BaseModel):
    model_config = ConfigDict(extra="allow")


class StoreSettings(_Section):
    name: str = "MK Local Brand"
    description: str = "Local clothing brand with the latest fashion in high quality"
    phone: str = ""
    email: str = ""
    address: str = ""


class OrderSettings(_Section):
    prefix: str = "ORD-"
    minAmount: float = Field(0, ge=0)
    deliveryFee: float = Field(0, ge=0)
    autoConfirm: bool = False


class NotificationSettings(_Section):
    newOrder: bool = True
    lowStock: bool = True
    email: bool = False


class AppearanceSettings(_Section):
    darkMode: bool = False
    fontSize: Literal["small", "medium", "large"] = "medium"
    language: str = "ar"


class StorageSettings(_Section):
    quotaMB: Optional[float] = Field(None, ge=0)


class InventorySettings(_Section):
    lowThreshold: int = Field(15, ge=0)
    criticalThreshold: int = Field(10, ge=0)
    minStockDefault: int = Field(15, ge=0)

    @model_validator(mode="after")
    def check_thresholds(self):
        if self.criticalThreshold > self.lowThreshold:
            raise ValueError("criticalThreshold must not exceed lowThreshold")
        return self


class SettingsDocument(BaseModel):
    # unknown top-level keys are kept as-is
    model_config = ConfigDict(extra="allow")

    store: StoreSettings = Field(default_factory=StoreSettings)
    orders: OrderSettings = Field(default_factory=OrderSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    appearance: AppearanceSettings = Field(default_factory=AppearanceSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    inventory: InventorySettings = Field(default_factory=InventorySettings)


SETTINGS_SECTIONS = ("store", "orders", "notifications", "appearance", "storage", "inventory")
