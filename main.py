import logging
from typing import Any, Dict, List, Optional, Union

from fastapi import Body, Depends, FastAPI, File, Form, Header, HTTPException, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

import config
from database import build_selector, connect
from errors import AuthError, InvalidDataError, NotFoundError, StoreError, StoreUnavailableError
from repositories import Storefront
from security import create_token, decode_token
from uploads import discard_images, read_images, save_images

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

selector = build_selector()
storefront = Storefront(selector)

app = FastAPI(title="Storefront API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    NotFoundError: 404,
    InvalidDataError: 400,
    AuthError: 401,
    StoreUnavailableError: 500,
}


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    status = next((code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), 500)
    return JSONResponse(status_code=status, content={"success": False, "message": exc.message})


def get_storefront() -> Storefront:
    return storefront


def get_current_admin(authorization: Optional[str] = Header(None)) -> dict:
    if not authorization:
        raise HTTPException(status_code=401, detail="Access token required")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Access token required")
    try:
        return decode_token(token)
    except AuthError:
        raise HTTPException(status_code=403, detail="Invalid token")


def public_admin(admin: dict) -> dict:
    return {
        "id": admin.get("id"),
        "username": admin.get("username"),
        "email": admin.get("email"),
        "role": admin.get("role"),
    }


def split_list(value) -> Optional[List[str]]:
    if value is None:
        return None
    if isinstance(value, str):
        return [s.strip() for s in value.split(",") if s.strip()]
    return list(value)


@app.on_event("startup")
def startup():
    selector.file_backend.initialize()
    connect(selector)
    if selector.mongo_backend is not None:
        selector.mongo_backend.ensure_indexes()
    try:
        storefront.admins.ensure_default()
    except StoreError as exc:
        logger.error("Error creating default admin: %s", exc.message)


@app.get("/")
def root():
    return {"status": "ok", "service": "storefront-backend"}


@app.get("/schema")
def schema_overview():
    return {
        "collections": ["products", "orders", "admins", "settings"],
    }


# Simple health
@app.get("/test")
def test_database(shop: Storefront = Depends(get_storefront)):
    return {
        "backend": "running",
        "database": shop.selector.state.value,
        "mode": shop.selector.mode,
    }


# Product Endpoints
@app.get("/api/products")
def list_products(category: Optional[str] = None, featured: Optional[bool] = None, limit: int = Query(20, ge=0),
                  shop: Storefront = Depends(get_storefront)):
    products = shop.products.list(category=category, featured=featured, limit=limit)
    return {"success": True, "data": products, "count": len(products)}


@app.get("/api/product/{product_id}")
def get_product(product_id: str, shop: Storefront = Depends(get_storefront)):
    return {"success": True, "data": shop.products.get(product_id)}


# Orders
class OrderRequest(BaseModel):
    productId: Optional[str] = None
    quantity: Optional[Union[int, float, str]] = None
    customerName: Optional[str] = None
    customerPhone: Optional[str] = None
    customerEmail: Optional[str] = None
    notes: Optional[str] = None


@app.post("/api/orders")
def create_order(payload: OrderRequest, shop: Storefront = Depends(get_storefront)):
    order = shop.orders.place(
        payload.productId,
        payload.quantity,
        payload.customerName,
        payload.customerPhone,
        customer_email=payload.customerEmail,
        notes=payload.notes,
    )
    return {"success": True, "message": "Order created", "data": order}


# Admin auth
class LoginRequest(BaseModel):
    username: str
    password: str


class TokenResponse(BaseModel):
    success: bool = True
    token: str
    message: str = "Login successful"
    user: Dict[str, Any]


@app.post("/api/admin/login", response_model=TokenResponse)
def login(payload: LoginRequest, shop: Storefront = Depends(get_storefront)):
    # the live backend may not be the one seeded at startup
    shop.admins.ensure_default()
    try:
        admin = shop.admins.authenticate(payload.username, payload.password)
    except AuthError:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return TokenResponse(token=create_token(admin), user=public_admin(admin))


class ChangePasswordRequest(BaseModel):
    currentPassword: Optional[str] = None
    newPassword: Optional[str] = None


@app.post("/api/admin/change-password")
def change_password(payload: ChangePasswordRequest, user=Depends(get_current_admin),
                    shop: Storefront = Depends(get_storefront)):
    shop.admins.change_password(user["username"], payload.currentPassword, payload.newPassword)
    return {"success": True, "message": "Password changed successfully"}


# Admin products
class ProductPayload(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    discountPercent: Optional[Union[float, str]] = None
    discount: Optional[Union[float, str]] = None
    category: Optional[str] = None
    stock: Optional[int] = None
    sizes: Optional[Union[List[str], str]] = None
    colors: Optional[Union[List[str], str]] = None
    featured: Optional[Union[bool, str]] = None

    def fields(self) -> Dict[str, Any]:
        data = self.model_dump(exclude={"discount"}, exclude_none=True)
        if self.discountPercent is None and self.discount is not None:
            data["discountPercent"] = self.discount
        for key in ("sizes", "colors"):
            if key in data:
                data[key] = split_list(data[key])
        if isinstance(self.featured, str):
            data["featured"] = self.featured in ("on", "true")
        return data


def product_form(
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[float] = Form(None),
    discountPercent: Optional[str] = Form(None),
    discount: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    stock: Optional[int] = Form(None),
    sizes: Optional[str] = Form(None),
    colors: Optional[str] = Form(None),
    featured: Optional[str] = Form(None),
) -> ProductPayload:
    return ProductPayload(name=name, description=description, price=price, discountPercent=discountPercent,
                          discount=discount, category=category, stock=stock, sizes=sizes, colors=colors,
                          featured=featured)


def uploads_dir(shop: Storefront) -> str:
    return shop.selector.file_backend.uploads_dir or config.UPLOADS_DIR


def with_uploaded_images(shop: Storefront, files, write):
    """Store the uploaded images, then run `write(paths)`; images are removed if the write fails."""
    images = read_images(files)
    paths = save_images(images, uploads_dir(shop)) if images else []
    try:
        return write(paths or None)
    except StoreError:
        discard_images(paths, uploads_dir(shop))
        raise


@app.post("/api/admin/products")
def admin_create_product(payload: ProductPayload = Depends(product_form),
                         images: Optional[List[UploadFile]] = File(None),
                         user=Depends(get_current_admin), shop: Storefront = Depends(get_storefront)):
    product = with_uploaded_images(shop, images, lambda paths: shop.products.create(payload.fields(), images=paths))
    return {"success": True, "data": product, "message": "Product created successfully"}


@app.put("/api/admin/products/{product_id}")
def admin_update_product(product_id: str, payload: ProductPayload = Depends(product_form),
                         images: Optional[List[UploadFile]] = File(None),
                         user=Depends(get_current_admin), shop: Storefront = Depends(get_storefront)):
    product = with_uploaded_images(
        shop, images, lambda paths: shop.products.update(product_id, payload.fields(), images=paths)
    )
    return {"success": True, "data": product, "message": "Product updated successfully"}


@app.delete("/api/admin/products/{product_id}")
def admin_delete_product(product_id: str, user=Depends(get_current_admin),
                         shop: Storefront = Depends(get_storefront)):
    shop.products.delete(product_id)
    return {"success": True, "message": "Product deleted successfully"}


@app.get("/api/admin/inventory")
def admin_inventory(user=Depends(get_current_admin), shop: Storefront = Depends(get_storefront)):
    items = shop.products.inventory(shop.settings.thresholds())
    return {"success": True, "data": items, "count": len(items)}


# Admin orders
@app.get("/api/admin/orders")
def admin_list_orders(status: Optional[str] = None, limit: int = Query(50, ge=0), user=Depends(get_current_admin),
                      shop: Storefront = Depends(get_storefront)):
    orders = shop.orders.list(status=status, limit=limit)
    return {"success": True, "data": orders, "count": len(orders)}


@app.post("/api/admin/orders")
def admin_create_order(payload: Dict[str, Any] = Body(...), user=Depends(get_current_admin),
                       shop: Storefront = Depends(get_storefront)):
    order = shop.orders.create(payload)
    return {"success": True, "data": order, "message": "Order created successfully"}


@app.put("/api/admin/orders/{order_id}")
def admin_update_order(order_id: str, payload: Dict[str, Any] = Body(...), user=Depends(get_current_admin),
                       shop: Storefront = Depends(get_storefront)):
    order = shop.orders.update(order_id, payload)
    return {"success": True, "data": order, "message": "Order updated successfully"}


@app.delete("/api/admin/orders/{order_id}")
def admin_delete_order(order_id: str, user=Depends(get_current_admin), shop: Storefront = Depends(get_storefront)):
    shop.orders.delete(order_id)
    return {"success": True, "message": "Order deleted successfully"}


@app.get("/api/admin/dashboard")
def admin_dashboard(user=Depends(get_current_admin), shop: Storefront = Depends(get_storefront)):
    return {"success": True, "data": shop.dashboard.get_stats()}


# Settings and storage
@app.get("/api/admin/settings")
def admin_get_settings(user=Depends(get_current_admin), shop: Storefront = Depends(get_storefront)):
    return {"success": True, "data": shop.settings.get()}


@app.put("/api/admin/settings")
def admin_update_settings(payload: Dict[str, Any] = Body(...), user=Depends(get_current_admin),
                          shop: Storefront = Depends(get_storefront)):
    return {"success": True, "data": shop.settings.update(payload), "message": "Settings updated"}


@app.get("/api/admin/storage")
def admin_storage(user=Depends(get_current_admin), shop: Storefront = Depends(get_storefront)):
    return {"success": True, "data": shop.storage.get_usage()}


# Seed demo data if empty
@app.post("/api/admin/seed")
def seed_demo(user=Depends(get_current_admin), shop: Storefront = Depends(get_storefront)):
    if shop.products.count() > 0:
        return {"success": True, "status": "already-seeded"}

    demo = [
        {
            "name": "MK Classic Shirt",
            "description": "High quality cotton shirt with a classic cut.",
            "price": 89.99,
            "images": ["/images/classic-shirt.jpg"],
            "category": "Shirts",
            "stock": 25,
            "sizes": ["S", "M", "L", "XL"],
            "colors": ["White", "Black", "Grey"],
            "featured": True,
        },
        {
            "name": "MK Sport Pants",
            "description": "Comfortable sport pants with a modern, practical design.",
            "price": 129.99,
            "images": ["/images/sports-pants.jpg"],
            "category": "Pants",
            "stock": 15,
            "sizes": ["M", "L", "XL"],
            "colors": ["Black", "Navy"],
            "featured": True,
        },
        {
            "name": "MK Winter Jacket",
            "description": "Warm winter jacket of excellent quality.",
            "price": 199.99,
            "images": ["/images/winter-jacket.jpg"],
            "category": "Jackets",
            "stock": 10,
            "sizes": ["S", "M", "L", "XL", "XXL"],
            "colors": ["Black", "Brown", "Navy"],
            "featured": True,
        },
    ]
    for d in demo:
        shop.products.create(d)
    logger.info("Seeded %d sample products", len(demo))
    return {"success": True, "status": "seeded", "count": len(demo)}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
