from __future__ import annotations
import asyncio
import json
import os
from datetime import datetime, timezone
from typing import Optional

import httpx
import structlog
import redis.asyncio as redis

from . import config
from .cart import add_item, update_item, remove_item, cart_total, item_count
from .export import orders_to_csv
from .gateway import (
    GatewayError, PaymentGateway, new_gateway, payment_status_for,
    BACKEND as GATEWAY_BACKEND,
)
from .gateway._mock import MockSnap, MOCK_OUTCOMES
from .helpers import (
    now_ts, ct_equal, parse_int, format_rupiah, format_datetime,
    start_of_day, start_of_month, month_bounds,
)
from .infra.logs import setup_logging
from .infra.sql import make_async_engine
from .model import Base
from .model import catalog, orders
from .model.orders import OrderError
from .model.orm import (
    METHOD_QRIS, PAY_PAID, ORDER_STATUSES, PAYMENT_STATUSES,
)
from .notify import (
    new_notifier, order_update, payment_update, BACKEND as NOTIFY_BACKEND
)

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi import WebSocket, WebSocketDisconnect
from fastapi.exception_handlers import http_exception_handler
from fastapi.responses import (
    HTMLResponse, RedirectResponse, ORJSONResponse, PlainTextResponse,
    Response,
)
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.sessions import SessionMiddleware
from starlette.status import HTTP_303_SEE_OTHER

setup_logging(config.LOG_LEVEL, config.LOG_JSON)
log = structlog.get_logger(__name__)

HERE = os.path.dirname(os.path.abspath(__file__))

templates = Jinja2Templates(directory=os.path.join(HERE, "templates"))
templates.env.filters["rupiah"] = format_rupiah
templates.env.filters["datetime"] = format_datetime
templates.env.globals["site_name"] = config.SITE_NAME


engine, SessionAsync = make_async_engine(config.DATABASE_URL)


async def get_db() -> AsyncSession:
    async with SessionAsync() as session:
        yield session

gateway: Optional[PaymentGateway] = new_gateway()

app = FastAPI(
    title=config.SITE_NAME,
    default_response_class=ORJSONResponse,
)
app.mount(
    "/static",
    StaticFiles(directory=os.path.join(HERE, "static")),
    name="static",
)
app.add_middleware(
    SessionMiddleware,
    secret_key=config.SESSION_SECRET,
    max_age=config.SESSION_MAX_AGE,
)


# ---
# startup / shutdown
# ---
@app.on_event("startup")
async def _say_hello():
    log.info(
        "startup",
        site=config.SITE_NAME,
        payment_gateway=(gateway.name if gateway else "not configured"),
        payment_backend=GATEWAY_BACKEND,
        notify_backend=NOTIFY_BACKEND,
    )


@app.on_event("startup")
async def _db_init():
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


@app.on_event("startup")
async def _http_client_start():
    app.state.http = httpx.AsyncClient(timeout=10.0)


@app.on_event("startup")
async def _notifier_start():
    if NOTIFY_BACKEND == "redis":
        app.state.redis = redis.from_url(
            config.REDIS_URL,
            decode_responses=True,
            socket_connect_timeout=2.0,
            retry_on_timeout=True,
        )
        app.state.notifier = new_notifier(r=app.state.redis)
    else:
        app.state.notifier = new_notifier()


@app.on_event("shutdown")
async def _http_client_stop():
    http = getattr(app.state, "http", None)
    if http is not None:
        await http.aclose()
        app.state.http = None


@app.on_event("shutdown")
async def _notifier_stop():
    notifier = getattr(app.state, "notifier", None)
    if notifier is not None:
        await notifier.close()
        app.state.notifier = None


# ----------------------------
# Helpers
# ----------------------------
def render(request: Request, name: str, context: dict,
           status_code: int = 200) -> HTMLResponse:
    ctx = dict(context)
    # the 500 handler runs outside the session middleware
    if "session" in request.scope:
        ctx.setdefault("cart_count", item_count(get_cart(request)))
        ctx.setdefault("is_admin", is_admin(request))
    else:
        ctx.setdefault("cart_count", 0)
        ctx.setdefault("is_admin", False)
    return templates.TemplateResponse(
        request, name, ctx, status_code=status_code
    )


def fail(message: str, status_code: int = 400,
         key: str = "message") -> ORJSONResponse:
    return ORJSONResponse(
        {"success": False, key: message}, status_code=status_code
    )


def get_cart(request: Request) -> list:
    return request.session.get("cart") or []


def save_cart(request: Request, cart: list) -> None:
    request.session["cart"] = cart


def is_admin(request: Request) -> bool:
    return bool(request.session.get("admin_user"))


def require_admin(request: Request) -> None:
    if not is_admin(request):
        # preserve where we wanted to go
        dest = request.url.path
        raise HTTPException(status_code=HTTP_303_SEE_OTHER,
                            detail="redirect to login",
                            headers={"Location": f"/admin/login?next={dest}"})


def _safe_next(dest: Optional[str]) -> str:
    # only local paths; "//host" would leave the site
    if not dest or not dest.startswith("/") or dest.startswith("//"):
        return "/admin/dashboard"
    return dest


async def notify(request: Request, order_id: str, message: dict) -> None:
    notifier = getattr(request.app.state, "notifier", None)
    if notifier is None:
        return
    try:
        await notifier.publish(order_id, message)
    except redis.RedisError:
        # the page still polls, a lost push is not fatal
        log.exception("notify_failed", order_id=order_id)


# ----------------------------
# Error pages
# ----------------------------
@app.exception_handler(StarletteHTTPException)
async def _http_error(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return render(request, "customer/404.html",
                      {"title": "Page not found"}, status_code=404)
    return await http_exception_handler(request, exc)


@app.exception_handler(Exception)
async def _server_error(request: Request, exc: Exception):
    log.error("unhandled_error", path=request.url.path, exc_info=exc)
    return render(request, "customer/500.html",
                  {"title": "Something went wrong"}, status_code=500)


# ----------------------------
# Menu & checkout pages
# ----------------------------
@app.get("/", response_class=HTMLResponse)
async def menu_page(request: Request, db: AsyncSession = Depends(get_db)):
    try:
        products = await catalog.list_menu(db)
    except SQLAlchemyError:
        log.exception("menu_load_failed")
        products = []
    return render(request, "customer/menu.html", {
        "title": "Menu",
        "grouped_products": catalog.group_by_category(products),
        "cart": get_cart(request),
    })


@app.get("/checkout", response_class=HTMLResponse)
async def checkout_page(request: Request):
    cart = get_cart(request)
    if not cart:
        return RedirectResponse(url="/", status_code=HTTP_303_SEE_OTHER)
    return render(request, "customer/checkout.html", {
        "title": "Checkout",
        "cart": cart,
        "total": cart_total(cart),
    })


# ----------------------------
# Cart (session)
# ----------------------------
@app.get("/cart")
async def cart_show(request: Request):
    cart = get_cart(request)
    return {
        "success": True,
        "cart": cart,
        "total": cart_total(cart),
        "count": item_count(cart),
    }


@app.post("/cart/add")
async def cart_add(request: Request, payload: dict,
                   db: AsyncSession = Depends(get_db)):
    product_id = parse_int(payload.get("product_id"))
    quantity = parse_int(payload.get("quantity", 1))
    if quantity is None or quantity <= 0:
        return fail("Quantity must be a positive whole number")
    notes = payload.get("notes")
    if notes is not None and not isinstance(notes, str):
        return fail("Notes must be text")

    product = None
    if product_id is not None:
        product = await catalog.get_product(db, product_id)
    if product is None or not product.is_available:
        return fail("Product not found", 404)

    cart = add_item(get_cart(request), product, quantity, notes or "")
    save_cart(request, cart)
    return {"success": True, "cartCount": len(cart), "cart": cart}


@app.post("/cart/update")
async def cart_update(request: Request, payload: dict):
    index = parse_int(payload.get("index"))
    quantity = parse_int(payload.get("quantity"))
    if index is None or quantity is None:
        return fail("index and quantity are required")
    cart = update_item(get_cart(request), index, quantity)
    save_cart(request, cart)
    return {"success": True, "cart": cart}


@app.post("/cart/remove")
async def cart_remove(request: Request, payload: dict):
    index = parse_int(payload.get("index"))
    if index is None:
        return fail("index is required")
    cart = remove_item(get_cart(request), index)
    save_cart(request, cart)
    return {"success": True, "cart": cart}


@app.post("/cart/clear")
async def cart_clear(request: Request):
    save_cart(request, [])
    return {"success": True}


# ----------------------------
# Orders (customer)
# ----------------------------
@app.post("/order")
async def create_order(request: Request, payload: dict,
                       db: AsyncSession = Depends(get_db)):
    try:
        order = await orders.place_order(
            db,
            customer_name=payload.get("customer_name"),
            table_number=payload.get("table_number"),
            payment_method=payload.get("payment_method"),
            cart=get_cart(request),
        )
    except OrderError as e:
        return fail(str(e))
    except SQLAlchemyError:
        log.exception("order_failed")
        return fail("Something went wrong while processing your order", 500)

    save_cart(request, [])

    if order.payment_method == METHOD_QRIS:
        return {
            "success": True,
            "orderId": order.id,
            "redirectUrl": f"/payment/{order.id}",
        }
    return {
        "success": True,
        "orderId": order.id,
        "message": "Order placed",
    }


@app.get("/order/{order_id}", response_class=HTMLResponse)
async def order_tracking_page(request: Request, order_id: str,
                              db: AsyncSession = Depends(get_db)):
    order = await orders.get_order(db, order_id, with_items=True)
    if order is None:
        return render(request, "customer/404.html",
                      {"title": "Order not found"}, status_code=404)
    return render(request, "customer/order_tracking.html", {
        "title": "Track your order",
        "order": order,
    })


# ----------------------------
# API: products & orders (JSON)
# ----------------------------
@app.get("/api/products")
async def api_products(db: AsyncSession = Depends(get_db)):
    try:
        products = await catalog.list_available(db)
    except SQLAlchemyError as e:
        log.exception("api_products_failed")
        return fail(str(e), 500, key="error")
    return {
        "success": True,
        "products": [catalog.product_to_dict(p) for p in products],
    }


@app.get("/api/products/{product_id}")
async def api_product(product_id: int, db: AsyncSession = Depends(get_db)):
    product = await catalog.get_product(db, product_id)
    if product is None:
        return fail("Product not found", 404, key="error")
    return {"success": True, "product": catalog.product_to_dict(product)}


@app.get("/api/orders")
async def api_orders(db: AsyncSession = Depends(get_db)):
    try:
        rows = await orders.list_orders(db)
    except SQLAlchemyError as e:
        log.exception("api_orders_failed")
        return fail(str(e), 500, key="error")
    return {"success": True, "orders": [orders.order_to_dict(o) for o in rows]}


@app.get("/api/orders/{order_id}")
async def api_order(order_id: str, db: AsyncSession = Depends(get_db)):
    order = await orders.get_order(db, order_id, with_items=True)
    if order is None:
        return fail("Order not found", 404, key="error")
    return {"success": True, "order": orders.order_to_dict(order)}


# ----------------------------
# Payment
# ----------------------------
@app.post("/payment/notification")
async def payment_notification(request: Request,
                               db: AsyncSession = Depends(get_db)):
    if gateway is None:
        return PlainTextResponse("Payment gateway not configured",
                                 status_code=503)
    try:
        notification = json.loads(await request.body())
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON")
    if not isinstance(notification, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON")

    gateway.verify_notification(notification)

    order_id = str(notification.get("order_id", ""))
    payment_status = payment_status_for(
        notification.get("transaction_status"),
        notification.get("fraud_status"),
    )
    try:
        order, changed = await orders.apply_payment_notification(
            db, order_id, payment_status
        )
    except SQLAlchemyError:
        log.exception("payment_notification_failed", order_id=order_id)
        return PlainTextResponse("Error", status_code=500)

    if order is None:
        log.warning("payment_notification_unknown_order", order_id=order_id)
        return PlainTextResponse("Order not found", status_code=404)

    log.info(
        "payment_notification",
        order_id=order_id,
        transaction_status=notification.get("transaction_status"),
        fraud_status=notification.get("fraud_status"),
        payment_status=order.payment_status,
        changed=changed,
    )
    if changed:
        await notify(request, order_id,
                     payment_update(order_id, order.payment_status))
    return PlainTextResponse("OK")


@app.get("/payment/{order_id}", response_class=HTMLResponse)
async def payment_page(request: Request, order_id: str,
                       db: AsyncSession = Depends(get_db)):
    try:
        order = await orders.get_order(db, order_id)
    except SQLAlchemyError:
        log.exception("payment_page_failed", order_id=order_id)
        order = None
    if order is None or order.payment_method != METHOD_QRIS:
        return RedirectResponse(url="/", status_code=HTTP_303_SEE_OTHER)
    return render(request, "customer/payment.html", {
        "title": "Payment",
        "order": order,
        "gateway_ready": gateway is not None,
        "client_key": gateway.client_key if gateway else "",
        "snap_js_url": gateway.snap_js_url if gateway else None,
        "poll_interval_ms": config.PAYMENT_POLL_INTERVAL_MS,
    })


@app.post("/payment/{order_id}/create")
async def payment_create(request: Request, order_id: str,
                         db: AsyncSession = Depends(get_db)):
    if gateway is None:
        return fail("Payment gateway not configured", 500)

    order = await orders.get_order(db, order_id)
    if order is None:
        return fail("Order not found", 404)
    if order.payment_status == PAY_PAID:
        return fail("Order is already paid")
    if order.midtrans_token:
        # a second transaction for the same order id is refused upstream
        return {
            "success": True,
            "token": order.midtrans_token,
            "redirect_url": gateway.redirect_url_for(
                order, order.midtrans_token
            ),
        }

    try:
        tx = await gateway.create_transaction(request.app.state.http, order)
        await orders.attach_gateway_token(db, order, tx["token"])
    except (GatewayError, SQLAlchemyError):
        log.exception("create_transaction_failed", order_id=order_id)
        return fail("Failed to create payment transaction", 500)

    log.info("transaction_created", order_id=order_id, gateway=gateway.name)
    return {
        "success": True,
        "token": tx["token"],
        "redirect_url": tx["redirect_url"],
    }


@app.get("/payment/{order_id}/status")
async def payment_status(order_id: str, db: AsyncSession = Depends(get_db)):
    try:
        order = await orders.get_order(db, order_id)
    except SQLAlchemyError:
        log.exception("payment_status_failed", order_id=order_id)
        return fail("Failed to check payment status", 500)
    if order is None:
        return fail("Order not found", 404)
    return {
        "success": True,
        "payment_status": order.payment_status,
        "order_status": order.status,
    }


# ----------------------------
# MockPay UI (only with PAYMENT_GATEWAY=mock)
# ----------------------------
@app.get("/mockpay/{order_id}", response_class=HTMLResponse)
async def mockpay_screen(request: Request, order_id: str,
                         db: AsyncSession = Depends(get_db)):
    if not isinstance(gateway, MockSnap):
        raise HTTPException(404, "mock gateway disabled")
    order = await orders.get_order(db, order_id)
    if order is None:
        raise HTTPException(404, "order not found")
    return render(request, "customer/mockpay.html", {
        "title": "MockPay",
        "order": order,
        "outcomes": list(MOCK_OUTCOMES),
        "webhook_url": config.MOCK_WEBHOOK_URL,
    })


@app.post("/mockpay/{order_id}/emit")
async def mockpay_emit(request: Request, order_id: str,
                       db: AsyncSession = Depends(get_db)):
    if not isinstance(gateway, MockSnap):
        raise HTTPException(404, "mock gateway disabled")
    form = await request.form()
    kind = form.get("t")
    if kind not in MOCK_OUTCOMES:
        raise HTTPException(400, detail="invalid outcome")

    order = await orders.get_order(db, order_id)
    if order is None:
        raise HTTPException(404, "order not found")

    notification = gateway.build_notification(order, kind)
    client_http: httpx.AsyncClient = request.app.state.http
    try:
        await client_http.post(config.MOCK_WEBHOOK_URL, json=notification)
    except httpx.HTTPError as e:
        # the customer can press the button again
        log.warning("mock_webhook_delivery_failed", order_id=order_id,
                    error=str(e))

    return RedirectResponse(url=f"/payment/{order_id}",
                            status_code=HTTP_303_SEE_OTHER)


# ----------------------------
# Real-time order updates
# ----------------------------
@app.websocket("/ws/orders/{order_id}")
async def order_updates(websocket: WebSocket, order_id: str):
    async with SessionAsync() as db:
        order = await orders.get_order(db, order_id)
    if order is None:
        await websocket.close(code=4404)
        return

    notifier = websocket.app.state.notifier
    # subscribe before accepting so nothing published after the
    # snapshot is missed
    async with notifier.subscribe(order_id) as updates:
        await websocket.accept()
        await websocket.send_json({
            "event": "snapshot",
            "orderId": order.id,
            "status": order.status,
            "payment_status": order.payment_status,
        })

        async def _forward():
            async for message in updates:
                await websocket.send_json(message)

        forward = asyncio.create_task(_forward())
        try:
            while True:
                # nothing to read; this only waits for the disconnect
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            forward.cancel()
            await asyncio.gather(forward, return_exceptions=True)


# ----------------------------
# Admin: auth
# ----------------------------
@app.get("/admin/login", response_class=HTMLResponse)
async def admin_login_get(request: Request,
                          next: str | None = "/admin/dashboard"):
    if is_admin(request):
        return RedirectResponse(url="/admin/dashboard",
                                status_code=HTTP_303_SEE_OTHER)
    return render(request, "admin/login.html",
                  {"title": "Admin Login", "next": next, "error": None})


@app.post("/admin/login", response_class=HTMLResponse)
async def admin_login_post(request: Request):
    form = await request.form()
    username = str(form.get("username") or "").strip()
    password = str(form.get("password") or "")
    dest = _safe_next(form.get("next"))

    ok_user = ct_equal(username, config.ADMIN_USERNAME)
    ok_pass = ct_equal(password, config.ADMIN_PASSWORD)
    if ok_user and ok_pass:
        request.session["admin_user"] = username
        log.info("admin_login", username=username)
        return RedirectResponse(url=dest, status_code=HTTP_303_SEE_OTHER)

    log.warning("admin_login_failed", username=username)
    return render(
        request, "admin/login.html",
        {"title": "Admin Login", "next": dest,
         "error": "Invalid username or password."},
        status_code=401,
    )


@app.get("/admin/logout")
async def admin_logout(request: Request):
    request.session.clear()
    return RedirectResponse(url="/admin/login",
                            status_code=HTTP_303_SEE_OTHER)


@app.get("/admin", dependencies=[Depends(require_admin)])
async def admin_root():
    return RedirectResponse(url="/admin/dashboard",
                            status_code=HTTP_303_SEE_OTHER)


# ----------------------------
# Admin: dashboard
# ----------------------------
@app.get("/admin/dashboard", response_class=HTMLResponse,
         dependencies=[Depends(require_admin)])
async def admin_dashboard(request: Request,
                          db: AsyncSession = Depends(get_db)):
    now = now_ts()
    try:
        today_sales = await orders.sales_total_since(db, start_of_day(now))
        monthly_sales = await orders.sales_total_since(
            db, start_of_month(now)
        )
        popular = await orders.popular_products(db, limit=5)
        recent = await orders.recent_orders(db, limit=5)
    except SQLAlchemyError:
        log.exception("dashboard_load_failed")
        today_sales, monthly_sales, popular, recent = 0, 0, [], []

    return render(request, "admin/dashboard.html", {
        "title": "Dashboard",
        "today_sales": today_sales,
        "monthly_sales": monthly_sales,
        "popular_products": popular,
        "recent_orders": recent,
    })


# ----------------------------
# Admin: products
# ----------------------------
@app.get("/admin/products", response_class=HTMLResponse,
         dependencies=[Depends(require_admin)])
async def admin_products(request: Request,
                         db: AsyncSession = Depends(get_db)):
    try:
        products = await catalog.list_all(db)
    except SQLAlchemyError:
        log.exception("admin_products_failed")
        products = []
    return render(request, "admin/products.html",
                  {"title": "Products", "products": products})


@app.get("/admin/products/add", response_class=HTMLResponse,
         dependencies=[Depends(require_admin)])
async def admin_product_add(request: Request):
    return render(request, "admin/product_form.html",
                  {"title": "Add product", "product": None, "error": None})


@app.get("/admin/products/edit/{product_id}", response_class=HTMLResponse,
         dependencies=[Depends(require_admin)])
async def admin_product_edit(request: Request, product_id: int,
                             db: AsyncSession = Depends(get_db)):
    product = await catalog.get_product(db, product_id)
    if product is None:
        return RedirectResponse(url="/admin/products",
                                status_code=HTTP_303_SEE_OTHER)
    return render(request, "admin/product_form.html",
                  {"title": "Edit product", "product": product,
                   "error": None})


@app.post("/admin/products/save", dependencies=[Depends(require_admin)])
async def admin_product_save(request: Request,
                             db: AsyncSession = Depends(get_db)):
    form = await request.form()
    product_id = parse_int(form.get("id"))
    data, error = catalog.parse_product_form(
        name=form.get("name"),
        description=form.get("description"),
        price=form.get("price"),
        category=form.get("category"),
        stock=form.get("stock"),
        is_available=form.get("is_available"),
        image_url=form.get("image_url"),
    )
    if error:
        # re-render with what was typed
        return render(request, "admin/product_form.html", {
            "title": "Edit product" if product_id else "Add product",
            "product": dict(data, id=product_id),
            "error": error,
        }, status_code=400)

    try:
        product = await catalog.save_product(db, data, product_id)
    except SQLAlchemyError:
        log.exception("product_save_failed", product_id=product_id)
        return RedirectResponse(url="/admin/products",
                                status_code=HTTP_303_SEE_OTHER)
    if product is None:
        log.warning("product_save_unknown", product_id=product_id)
    else:
        log.info("product_saved", product_id=product.id, name=product.name)
    return RedirectResponse(url="/admin/products",
                            status_code=HTTP_303_SEE_OTHER)


@app.post("/admin/products/delete/{product_id}",
          dependencies=[Depends(require_admin)])
async def admin_product_delete(product_id: int,
                               db: AsyncSession = Depends(get_db)):
    try:
        deleted = await catalog.delete_product(db, product_id)
    except IntegrityError:
        return fail("Product is part of existing orders; mark it "
                    "unavailable instead", 409, key="error")
    except SQLAlchemyError as e:
        log.exception("product_delete_failed", product_id=product_id)
        return fail(str(e), 500, key="error")
    if not deleted:
        return fail("Product not found", 404, key="error")
    log.info("product_deleted", product_id=product_id)
    return {"success": True}


# ----------------------------
# Admin: orders
# ----------------------------
@app.get("/admin/orders", response_class=HTMLResponse,
         dependencies=[Depends(require_admin)])
async def admin_orders(request: Request, db: AsyncSession = Depends(get_db)):
    try:
        rows = await orders.list_orders(db)
    except SQLAlchemyError:
        log.exception("admin_orders_failed")
        rows = []
    return render(request, "admin/orders.html", {
        "title": "Orders",
        "orders": rows,
        "order_statuses": ORDER_STATUSES,
        "payment_statuses": PAYMENT_STATUSES,
    })


@app.post("/admin/orders/{order_id}/status",
          dependencies=[Depends(require_admin)])
async def admin_order_status(request: Request, order_id: str, payload: dict,
                             db: AsyncSession = Depends(get_db)):
    status = payload.get("status")
    if status not in ORDER_STATUSES:
        return fail(f"Invalid status: {status}", 400, key="error")
    try:
        order = await orders.set_order_status(db, order_id, status)
    except SQLAlchemyError as e:
        log.exception("order_status_failed", order_id=order_id)
        return fail(str(e), 500, key="error")
    if order is None:
        return fail("Order not found", 404, key="error")

    await notify(request, order_id, order_update(order_id, status))
    return {"success": True}


@app.post("/admin/orders/{order_id}/payment-status",
          dependencies=[Depends(require_admin)])
async def admin_order_payment_status(request: Request, order_id: str,
                                     payload: dict,
                                     db: AsyncSession = Depends(get_db)):
    payment_status = payload.get("payment_status")
    if payment_status not in PAYMENT_STATUSES:
        return fail(f"Invalid payment status: {payment_status}", 400,
                    key="error")
    try:
        order = await orders.set_payment_status(db, order_id, payment_status)
    except SQLAlchemyError as e:
        log.exception("payment_status_update_failed", order_id=order_id)
        return fail(str(e), 500, key="error")
    if order is None:
        return fail("Order not found", 404, key="error")

    await notify(request, order_id, payment_update(order_id, payment_status))
    return {"success": True}


@app.get("/admin/export/csv", dependencies=[Depends(require_admin)])
async def admin_export_csv(month: Optional[str] = None,
                           year: Optional[str] = None,
                           db: AsyncSession = Depends(get_db)):
    today = datetime.now(tz=timezone.utc)
    m = today.month if month is None else parse_int(month)
    y = today.year if year is None else parse_int(year)
    if m is None or y is None or not 1 <= m <= 12 or not 1970 <= y <= 9999:
        return PlainTextResponse("Invalid month or year", status_code=400)

    start, end = month_bounds(y, m)
    try:
        rows = await orders.orders_between(db, start, end)
    except SQLAlchemyError:
        log.exception("csv_export_failed", month=m, year=y)
        return PlainTextResponse("Error generating CSV", status_code=500)

    return Response(
        content=orders_to_csv(rows),
        media_type="text/csv",
        headers={
            "Content-Disposition":
                f"attachment; filename=orders-{m}-{y}.csv",
        },
    )
