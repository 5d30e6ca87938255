"""
Domain repositories

Each repository asks the BackendSelector for its store on every call, so an
operation always runs against whichever backend is live at that moment and
commits to it for the whole call.
"""

import logging
import time
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Type

from pydantic import BaseModel, ValidationError

from errors import AuthError, InvalidDataError, NotFoundError, StoreUnavailableError
from pricing import StockThresholds, check_minimum, clamp_discount, effective_price, order_total, stock_status
from schemas import (
    Admin,
    AdminUpdate,
    Order,
    OrderUpdate,
    Product,
    ProductUpdate,
    SETTINGS_SECTIONS,
    SettingsDocument,
)
from security import hash_password, verify_password
from stores import ID_KEYS, RecordFilter, base36, strip_ids

logger = logging.getLogger(__name__)

DEFAULT_ADMIN = {
    "username": "admin",
    "password": "admin123",
    "email": "admin@mk-local.com",
    "role": "super_admin",
}
MIN_PASSWORD_LENGTH = 6


def validate(model: Type[BaseModel], data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    try:
        obj = model.model_validate(data)
    except ValidationError as exc:
        raise InvalidDataError.from_validation(exc) from exc
    return obj.model_dump(exclude_unset=partial)


def clean_patch(patch: Dict[str, Any]) -> Dict[str, Any]:
    """Drop ids and keys explicitly set to None; False and 0 are kept."""
    return {k: v for k, v in (patch or {}).items() if v is not None and k not in ID_KEYS}


class Repository:
    collection: str = ""
    label: str = "Record"

    def __init__(self, selector):
        self.selector = selector

    def store(self):
        return self.selector.store(self.collection)

    def get(self, rid: str) -> dict:
        rec = self.store().get(rid)
        if rec is None:
            raise NotFoundError(f"{self.label} not found")
        return rec

    def delete(self, rid: str) -> None:
        if not self.store().delete(rid):
            raise NotFoundError(f"{self.label} not found")

    def count(self, filt: Optional[RecordFilter] = None) -> int:
        return self.store().count(filt)

    def _update(self, rid: str, changes: Dict[str, Any]) -> dict:
        rec = self.store().update(rid, changes)
        if rec is None:
            raise NotFoundError(f"{self.label} not found")
        return rec


class SettingsRepository:
    def __init__(self, selector):
        self.selector = selector

    def _load(self) -> dict:
        """Stored document over the defaults; defaults are persisted only when nothing is stored."""
        store = self.selector.settings()
        doc = store.load()
        defaults = SettingsDocument().model_dump()
        if doc is None:
            store.save(defaults)
            return defaults
        merged = {**defaults, **doc}
        for section in SETTINGS_SECTIONS:
            current = doc.get(section)
            merged[section] = {**defaults[section], **(current if isinstance(current, dict) else {})}
        return merged

    def get(self) -> dict:
        try:
            return self._load()
        except StoreUnavailableError as exc:
            # a failed read never overwrites what is stored
            logger.error("Serving default settings: %s", exc.message)
            return SettingsDocument().model_dump()

    def update(self, partial: Dict[str, Any]) -> dict:
        if not isinstance(partial, dict):
            raise InvalidDataError("Settings update must be an object")
        current = self._load()
        merged = {**current, **partial}
        for section in SETTINGS_SECTIONS:
            if section not in partial:
                continue
            patch = partial[section]
            if patch is None:
                merged[section] = current[section]
            elif not isinstance(patch, dict):
                raise InvalidDataError(f"{section}: must be an object")
            else:
                merged[section] = {**current[section], **patch}
        doc = validate(SettingsDocument, merged)
        self.selector.settings().save(doc)
        return doc

    def order_settings(self) -> dict:
        return self.get()["orders"]

    def thresholds(self) -> StockThresholds:
        inv = self.get()["inventory"]
        return StockThresholds(critical=int(inv["criticalThreshold"]), low=int(inv["lowThreshold"])).validate()


class ProductsRepository(Repository):
    collection = "products"
    label = "Product"

    def list(self, category: Optional[str] = None, featured: Optional[bool] = None,
             limit: Optional[int] = 20, min_stock: Optional[int] = None) -> List[dict]:
        equals = {}
        if category:
            equals["category"] = category
        if featured is not None:
            equals["featured"] = featured
        filt = RecordFilter(equals=equals, min_stock=min_stock)
        records = self.store().list(filt, newest_first=True)
        return records[:limit] if limit else records

    def create(self, fields: Dict[str, Any], images: Optional[Iterable[str]] = None) -> dict:
        data = strip_ids(fields or {})
        if images:
            data["images"] = list(images)
        if not data.get("images"):
            raise InvalidDataError("Product image is required")
        data["discountPercent"] = clamp_discount(data.get("discountPercent", 0))
        return self.store().create(validate(Product, data))

    def update(self, rid: str, patch: Dict[str, Any], images: Optional[Iterable[str]] = None) -> dict:
        changes = clean_patch(patch)
        if images:
            changes["images"] = list(images)
        if "discountPercent" in changes:
            changes["discountPercent"] = clamp_discount(changes["discountPercent"])
        return self._update(rid, validate(ProductUpdate, changes, partial=True))

    def low_stock_count(self, threshold: int) -> int:
        return self.count(RecordFilter(stock_below=threshold))

    def inventory(self, thresholds: StockThresholds) -> List[dict]:
        items = []
        for p in self.store().list():
            stock = int(p.get("stock") or 0)
            items.append({
                "id": p["id"],
                "name": p.get("name"),
                "category": p.get("category"),
                "stock": stock,
                "price": p.get("price", 0),
                "discountPercent": p.get("discountPercent", 0),
                "effectivePrice": round(effective_price(p.get("price") or 0, p.get("discountPercent")), 2),
                "status": stock_status(stock, thresholds),
            })
        return items


def make_order_code(prefix: str, now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"{prefix}{base36(now_ms % 10 ** 8).upper()}"


class OrdersRepository(Repository):
    collection = "orders"
    label = "Order"

    def __init__(self, selector, settings: SettingsRepository, products: ProductsRepository):
        super().__init__(selector)
        self.settings = settings
        self.products = products

    def list(self, status: Optional[str] = None, limit: Optional[int] = 50) -> List[dict]:
        filt = RecordFilter(equals={"status": status} if status else {})
        records = self.store().list(filt, newest_first=True)
        return records[:limit] if limit else records

    def place(self, product_id: str, quantity, customer_name: str, customer_phone: str,
              customer_email: Optional[str] = None, notes: Optional[str] = None) -> dict:
        """Public checkout: snapshot the product, price it and store a pending order."""
        if not product_id or not quantity or not customer_name or not customer_phone:
            raise InvalidDataError("Missing required fields")
        try:
            qty = int(quantity)
        except (TypeError, ValueError):
            raise InvalidDataError("Invalid quantity")
        if qty <= 0 or qty != float(quantity):
            raise InvalidDataError("Invalid quantity")

        cfg = self.settings.order_settings()
        product = self.products.get(product_id)
        unit = effective_price(product.get("price") or 0, product.get("discountPercent") or 0)
        check_minimum(unit, qty, float(cfg.get("minAmount") or 0))
        data = {
            "productId": product["id"],
            "orderCode": make_order_code(cfg.get("prefix") or "ORD-"),
            "productName": product.get("name"),
            "productPrice": product.get("price"),
            "quantity": qty,
            "customerName": customer_name,
            "customerPhone": customer_phone,
            "customerEmail": customer_email,
            "notes": notes,
            "status": "pending",
            "totalAmount": order_total(unit, qty, float(cfg.get("deliveryFee") or 0)),
        }
        return self.store().create(validate(Order, data))

    def create(self, fields: Dict[str, Any]) -> dict:
        data = strip_ids(fields or {})
        data.setdefault("status", "pending")
        return self.store().create(validate(Order, data))

    def update(self, rid: str, patch: Dict[str, Any]) -> dict:
        # any status may follow any other
        return self._update(rid, validate(OrderUpdate, clean_patch(patch), partial=True))

    def monthly_revenue(self, now: Optional[datetime] = None) -> float:
        # without an injected clock, each order date gets the local offset in force at that instant
        tz = now.tzinfo if now is not None else None
        now = now or datetime.now()
        total = 0.0
        for order in self.store().list():
            placed = order.get("orderDate")
            if not isinstance(placed, datetime):
                continue
            local = placed.astimezone(tz)
            if (local.year, local.month) == (now.year, now.month):
                total += float(order.get("totalAmount") or 0)
        return total


class AdminsRepository(Repository):
    collection = "admins"
    label = "Admin"

    def find_by_username(self, username: str) -> Optional[dict]:
        found = self.store().list(RecordFilter(equals={"username": username}))
        return found[0] if found else None

    def _find_by_email(self, email: str) -> Optional[dict]:
        found = self.store().list(RecordFilter(equals={"email": email.lower()}))
        return found[0] if found else None

    def resolve(self, id_or_username: str) -> dict:
        rec = self.store().get(id_or_username) or self.find_by_username(id_or_username)
        if rec is None:
            raise NotFoundError("Admin not found")
        return rec

    def create(self, fields: Dict[str, Any]) -> dict:
        data = strip_ids(fields or {})
        if not data.get("password"):
            raise InvalidDataError("password: Field required")
        data["password"] = hash_password(data["password"])
        doc = validate(Admin, data)
        if self.find_by_username(doc["username"]):
            raise InvalidDataError("Username already taken")
        if self._find_by_email(doc["email"]):
            raise InvalidDataError("Email already registered")
        return self.store().create(doc)

    def update(self, id_or_username: str, patch: Dict[str, Any]) -> dict:
        """Apply a partial update. A password in the patch is given in plain text."""
        admin = self.resolve(id_or_username)
        changes = validate(AdminUpdate, clean_patch(patch), partial=True)
        if "password" in changes:
            changes["password"] = hash_password(changes["password"])
        if "email" in changes:
            other = self._find_by_email(changes["email"])
            if other and other["id"] != admin["id"]:
                raise InvalidDataError("Email already registered")
        return self._update(admin["id"], changes)

    def authenticate(self, username: str, password: str) -> dict:
        admin = self.find_by_username(username) if username else None
        if not admin or not verify_password(password, admin.get("password", "")):
            raise AuthError("Invalid credentials")
        return admin

    def change_password(self, username: str, current: str, new: str) -> dict:
        if not current or not new or len(new) < MIN_PASSWORD_LENGTH:
            raise InvalidDataError("Invalid password data")
        admin = self.find_by_username(username)
        if admin is None:
            raise NotFoundError("Admin not found")
        if not verify_password(current, admin.get("password", "")):
            raise InvalidDataError("Current password is incorrect")
        return self.update(admin["id"], {"password": new})

    def ensure_default(self) -> Optional[dict]:
        if self.find_by_username(DEFAULT_ADMIN["username"]):
            return None
        admin = self.create(dict(DEFAULT_ADMIN))
        logger.info("Default admin user created (admin/admin123)")
        return admin


class DashboardRepository:
    def __init__(self, products: ProductsRepository, orders: OrdersRepository, settings: SettingsRepository):
        self.products = products
        self.orders = orders
        self.settings = settings

    def get_stats(self, now: Optional[datetime] = None) -> dict:
        low = self.settings.thresholds().low
        return {
            "totalProducts": self.products.count(),
            "totalOrders": self.orders.count(),
            "lowStockCount": self.products.low_stock_count(low),
            "monthlyRevenue": self.orders.monthly_revenue(now),
        }


class StorageRepository:
    def __init__(self, selector, settings: SettingsRepository):
        self.selector = selector
        self.settings = settings

    def get_usage(self) -> dict:
        backend = self.selector.backend
        usage = backend.usage()
        quota = self.settings.get()["storage"].get("quotaMB")
        used = usage["usedBytes"]
        return {
            "mode": backend.mode,
            "usedBytes": used,
            "usedMB": round(used / (1024 * 1024), 2),
            "quotaMB": float(quota) if quota is not None else None,
            "details": usage["details"],
        }


class Storefront:
    """All repositories wired to one selector."""

    def __init__(self, selector):
        self.selector = selector
        self.settings = SettingsRepository(selector)
        self.products = ProductsRepository(selector)
        self.orders = OrdersRepository(selector, self.settings, self.products)
        self.admins = AdminsRepository(selector)
        self.dashboard = DashboardRepository(self.products, self.orders, self.settings)
        self.storage = StorageRepository(selector, self.settings)
