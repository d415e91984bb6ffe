import logging
import os
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, HTTPException, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import OAuth2PasswordRequestForm
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from pymongo.database import Database
from pymongo.errors import PyMongoError

import settings
from auth import (
    CurrentUser,
    Token,
    create_access_token,
    get_blobs,
    get_current_admin,
    get_current_user,
    get_optional_user,
    get_password_hash,
    get_store,
    verify_password,
)
from blob import LocalBlobStore, default_blob_store, payment_proof_path, product_image_path
from database import connect
from errors import NotFoundError, ValidationError, register_error_handlers
from images import convert_to_webp_or_jpeg
from invoice import generate_invoice
from orders import create_order, merge_items
from sample_data import SAMPLE_PRODUCTS
from schemas import (
    CheckoutRequest,
    CreateOrderPayload,
    Order,
    OrderDetail,
    OrderStatus,
    Product,
    Profile,
    ProfileUpdate,
    ShippingEstimateRequest,
    StatusUpdate,
    TrackingUpdate,
    UserCreate,
)
from shipping import DEFAULT_RATE_CARDS, RateCard, ShippingQuote, estimate_shipping, parcel_for, parse_logistic
from store import Store

logger = logging.getLogger(__name__)

router = APIRouter()
admin = APIRouter(prefix="/admin", dependencies=[Depends(get_current_admin)])


class SeedRequest(BaseModel):
    force: bool = False


def get_order_detail_or_404(store: Store, order_id: str) -> OrderDetail:
    detail = store.get_order_with_items(order_id)
    if detail is None:
        raise NotFoundError("Order not found")
    return detail


@router.get("/")
def read_root():
    return {"name": settings.STORE_NAME, "status": "ok"}


@router.get("/test")
def test_database(store: Store = Depends(get_store)):
    info = {"backend": "running", "database": "disconnected"}
    try:
        info["collections"] = store.db.list_collection_names()[:10]
        info["database"] = "connected"
    except PyMongoError as e:
        info["error"] = str(e)[:50]
    return info


# Auth

@router.post("/auth/register", status_code=201)
def register(user: UserCreate, store: Store = Depends(get_store)):
    if store.get_user_by_email(user.email):
        raise HTTPException(status_code=400, detail="Email already registered")
    user_id = store.create_user(user.email, get_password_hash(user.password))
    store.upsert_profile(user_id, name=user.name)
    logger.info("registered user %s", user_id)
    return {"id": user_id}


@router.post("/auth/token", response_model=Token)
def login(response: Response, form_data: OAuth2PasswordRequestForm = Depends(), store: Store = Depends(get_store)):
    user = store.get_user_by_email(form_data.username)
    if not user or not verify_password(form_data.password, user["password_hash"]):
        raise HTTPException(status_code=400, detail="Incorrect username or password")
    profile = store.get_profile(user["id"])
    role = profile.role.value if profile else "customer"
    access_token = create_access_token(data={"sub": user["id"], "role": role})
    response.set_cookie(
        settings.SESSION_COOKIE, access_token, httponly=True, samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    return {"access_token": access_token, "token_type": "bearer"}


@router.post("/auth/logout")
def logout(response: Response):
    response.delete_cookie(settings.SESSION_COOKIE)
    return {"status": "ok"}


@router.get("/me")
async def me(current: CurrentUser = Depends(get_current_user)):
    return current


@router.get("/profile", response_model=Profile)
def read_profile(current: CurrentUser = Depends(get_current_user), store: Store = Depends(get_store)):
    profile = store.get_profile(current.id)
    if profile is None:
        raise NotFoundError("Profile not found")
    return profile


@router.put("/profile", response_model=Profile)
def update_profile(payload: ProfileUpdate, current: CurrentUser = Depends(get_current_user),
                   store: Store = Depends(get_store)):
    address = payload.address.model_dump() if payload.address else None
    return store.upsert_profile(current.id, name=payload.name, phone=payload.phone, address=address)


# Catalog

@router.get("/products")
def list_products(store: Store = Depends(get_store)):
    return store.list_products()


@router.get("/products/{product_id}")
def get_product(product_id: str, store: Store = Depends(get_store)):
    product = store.get_product(product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


# Shipping

@router.get("/shipping/rates", response_model=List[RateCard])
def list_rates():
    return DEFAULT_RATE_CARDS


@router.post("/shipping/estimate", response_model=ShippingQuote)
def shipping_estimate(payload: ShippingEstimateRequest):
    return estimate_shipping(payload.weight_gram, payload.dims, payload.courier, payload.service)


# Checkout and orders

@router.post("/checkout", status_code=201)
def checkout(payload: CheckoutRequest, response: Response, store: Store = Depends(get_store),
             blobs=Depends(get_blobs), current: Optional[CurrentUser] = Depends(get_optional_user)):
    courier, service = parse_logistic(payload.logistic)

    items = merge_items(payload.items)
    by_id = {p["id"]: p for p in store.get_products([i.product_id for i in items])}
    found = [i for i in items if i.product_id in by_id]
    weight, dims = parcel_for([by_id[i.product_id] for i in found], [i.quantity for i in found])
    quote = estimate_shipping(weight, payload.dims or dims, courier, service)

    created = create_order(store, CreateOrderPayload(
        user_id=current.id if current else None,
        customer_name=payload.customer_name,
        customer_email=payload.customer_email,
        customer_phone=payload.customer_phone,
        address=payload.address.model_dump(),
        courier=courier,
        courier_service=service,
        shipping_cost=quote.cost,
        items=items,
        note=payload.note,
    ))

    invoice_url = generate_invoice(blobs, created.order, created.items)
    order = store.set_invoice_url(created.order.id, invoice_url) or created.order

    response.headers["Location"] = f"/orders/{order.id}"
    return {"order": order, "items": created.items, "shipping": quote}


@router.get("/orders/{order_id}", response_model=OrderDetail)
def get_order(order_id: str, store: Store = Depends(get_store)):
    return get_order_detail_or_404(store, order_id)


@router.post("/orders/{order_id}/payment-proof")
def upload_payment_proof(order_id: str, payment_proof: UploadFile = File(...), store: Store = Depends(get_store),
                         blobs=Depends(get_blobs)):
    if store.get_order(order_id) is None:
        raise NotFoundError("Order not found")
    data = payment_proof.file.read()
    if not data:
        raise ValidationError("File is empty")

    converted = convert_to_webp_or_jpeg(data)
    url = blobs.put(payment_proof_path(order_id, payment_proof.filename, converted.ext),
                    converted.data, converted.content_type)
    store.attach_payment_proof(order_id, url)
    logger.info("payment proof attached to order %s", order_id)
    return {"ok": True, "proof_url": url}


@router.get("/track/{awb}", response_model=Order)
def track(awb: str, store: Store = Depends(get_store)):
    order = store.find_order_by_tracking_number(awb)
    if order is None:
        raise NotFoundError("Tracking number not found")
    return order


@router.get("/my/orders", response_model=List[Order])
def my_orders(current: CurrentUser = Depends(get_current_user), store: Store = Depends(get_store)):
    return store.list_orders_by_user(current.id)


# Admin

@admin.get("/orders", response_model=List[Order])
def admin_list_orders(status: Optional[OrderStatus] = None, store: Store = Depends(get_store)):
    return store.list_orders(status)


@admin.get("/orders/{order_id}", response_model=OrderDetail)
def admin_get_order(order_id: str, store: Store = Depends(get_store)):
    return get_order_detail_or_404(store, order_id)


@admin.patch("/orders/{order_id}/status", response_model=Order)
def admin_set_status(order_id: str, payload: StatusUpdate, store: Store = Depends(get_store)):
    order = store.update_order_status(order_id, payload.status)
    if order is None:
        raise NotFoundError("Order not found")
    logger.info("order %s status set to %s", order_id, payload.status.value)
    return order


@admin.post("/orders/{order_id}/tracking", response_model=Order)
def admin_update_tracking(order_id: str, payload: TrackingUpdate, store: Store = Depends(get_store)):
    order = store.append_tracking(order_id, payload.tracking_number, payload.status, payload.description)
    if order is None:
        raise NotFoundError("Order not found")
    logger.info("order %s tracking %s updated", order_id, payload.tracking_number)
    return order


@admin.post("/orders/{order_id}/invoice", response_model=Order)
def admin_regenerate_invoice(order_id: str, store: Store = Depends(get_store), blobs=Depends(get_blobs)):
    detail = get_order_detail_or_404(store, order_id)
    url = generate_invoice(blobs, detail.order, detail.items)
    order = store.set_invoice_url(order_id, url)
    if order is None:
        raise NotFoundError("Order not found")
    return order


@admin.post("/products", status_code=201)
def admin_create_product(
    name: str = Form(...),
    price: int = Form(...),
    weight_gram: int = Form(...),
    stock: int = Form(0),
    length_cm: Optional[float] = Form(None),
    width_cm: Optional[float] = Form(None),
    height_cm: Optional[float] = Form(None),
    images: List[UploadFile] = File(...),
    store: Store = Depends(get_store),
    blobs=Depends(get_blobs),
):
    if not name.strip() or price < 0 or stock < 0 or weight_gram <= 0 or not images:
        raise ValidationError("Invalid input")
    for dim in (length_cm, width_cm, height_cm):
        if dim is not None and dim <= 0:
            raise ValidationError("Invalid input")

    image_urls = []
    for upload in images:
        image_urls.append(blobs.put(
            product_image_path(upload.filename),
            upload.file.read(),
            upload.content_type or "application/octet-stream",
        ))

    product = store.create_product(Product(
        name=name.strip(), price=price, weight_gram=weight_gram, stock=stock,
        length_cm=length_cm, width_cm=width_cm, height_cm=height_cm, images=image_urls,
    ))
    logger.info("product %s created with %d images", product["id"], len(image_urls))
    return product


@admin.post("/products/seed")
def admin_seed_products(payload: SeedRequest, store: Store = Depends(get_store)):
    inserted = store.seed_products(SAMPLE_PRODUCTS, force=payload.force)
    if not inserted:
        return {"inserted": 0, "message": "Products already exist"}
    return {"inserted": inserted}


@admin.get("/stats")
def admin_stats(store: Store = Depends(get_store)):
    return store.stats()


def create_app(db: Optional[Database] = None, blobs=None) -> FastAPI:
    settings.setup_logging()
    app = FastAPI(title=f"{settings.STORE_NAME} API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.store = Store(db if db is not None else connect())
    app.state.blobs = blobs or default_blob_store()
    if isinstance(app.state.blobs, LocalBlobStore) and app.state.blobs.base_url.startswith("/"):
        app.mount(app.state.blobs.base_url, StaticFiles(directory=app.state.blobs.root, check_dir=False),
                  name="media")

    register_error_handlers(app)
    app.include_router(router)
    app.include_router(admin)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
