"""HTTP server for checkout initiation and the Stripe webhook endpoint."""

import asyncio
import logging
from typing import Optional

from aiohttp import web

from startupprice.config.settings import AppConfig, get_config
from startupprice.db.pool import close_pool, open_pool
from startupprice.db.schema.migrate import migrate
from startupprice.entitlements import (
    EntitlementStore,
    InMemoryEntitlementStore,
    PostgresEntitlementStore,
)
from startupprice.payments.checkout import (
    CheckoutProvider,
    StripeCheckoutProvider,
    start_checkout,
)
from startupprice.payments.currency import convert_usd_to_brl, format_brl_price
from startupprice.payments.errors import BillingError
from startupprice.payments.webhooks import handle_webhook

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"


@web.middleware
async def logging_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Log method and path of every request."""
    logger.info(f"{request.method} {request.path}")
    return await handler(request)


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """
    Convert uncaught exceptions into JSON error responses.

    Classified billing errors keep their status and public message; anything
    else becomes a bare 500 with no internal detail.
    """
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except BillingError as e:
        logger.warning(f"{request.method} {request.path} failed: {e}")
        return web.json_response({"error": e.public_message}, status=e.status_code)
    except Exception:
        logger.exception(f"Unhandled error on {request.method} {request.path}")
        return web.json_response({"error": INTERNAL_ERROR_MESSAGE}, status=500)


async def health_endpoint(request: web.Request) -> web.Response:
    """Handle GET /health."""
    return web.json_response({"ok": True})


async def checkout_endpoint(request: web.Request) -> web.Response:
    """Handle POST /api/billing/create-checkout-session.

    Body: ``{"userId": str, "email": str}``. Responds ``{"url": str}``.
    """
    try:
        body = await request.json()
    except ValueError:
        return web.json_response({"error": "Request body must be JSON"}, status=400)

    if not isinstance(body, dict):
        return web.json_response({"error": "Request body must be a JSON object"}, status=400)

    url = await start_checkout(
        body.get("userId"),
        body.get("email"),
        request.app["checkout_provider"],
    )
    return web.json_response({"url": url})


async def webhook_endpoint(request: web.Request) -> web.Response:
    """Handle POST /api/billing/webhook.

    The body is read as raw bytes; it must not be decoded before the
    signature check.
    """
    sig_header = request.headers.get("Stripe-Signature")
    payload = await request.read()

    return await handle_webhook(
        payload,
        sig_header,
        request.app["entitlement_store"],
        request.app["config"],
    )


async def price_endpoint(request: web.Request) -> web.Response:
    """Handle GET /api/billing/price.

    Responds with the Pro plan price in USD and converted to BRL for display.
    """
    config = request.app["config"]
    usd = config.plan_price_usd
    brl = round(await convert_usd_to_brl(usd, config), 2)

    return web.json_response({"usd": usd, "brl": brl, "formatted": format_brl_price(brl)})


async def entitlement_store_ctx(app: web.Application):
    """Open the entitlement store with the app and release it on cleanup.

    PostgreSQL when DB_DSN is set (pool opened and migrations applied first),
    otherwise the in-memory store.
    """
    config = app["config"]
    if config.db_dsn is None:
        logger.warning("DB_DSN not set - entitlements are held in memory only")
        app["entitlement_store"] = InMemoryEntitlementStore()
        yield
        return

    pool = await open_pool(config)
    try:
        applied = await migrate(pool)
        logger.info(f"Entitlement store: postgres ({applied} migration(s) applied)")
        app["entitlement_store"] = PostgresEntitlementStore(pool)
        yield
    finally:
        await close_pool(pool)


def create_app(
    store: Optional[EntitlementStore] = None,
    checkout_provider: Optional[CheckoutProvider] = None,
    config: Optional[AppConfig] = None,
) -> web.Application:
    """Create aiohttp application with billing routes.

    Args:
        store: Entitlement store updated by the webhook. When omitted the app
            opens one from config on startup and closes it on cleanup.
        checkout_provider: Provider for checkout sessions (Stripe by default)
        config: Application config (defaults to the process config)

    Returns:
        Configured aiohttp Application
    """
    config = config or get_config()

    app = web.Application(middlewares=[logging_middleware, error_middleware])
    app["config"] = config
    app["checkout_provider"] = checkout_provider or StripeCheckoutProvider(config)
    if store is not None:
        app["entitlement_store"] = store
    else:
        app.cleanup_ctx.append(entitlement_store_ctx)

    app.router.add_get("/health", health_endpoint)
    app.router.add_get("/api/billing/price", price_endpoint)
    app.router.add_post("/api/billing/create-checkout-session", checkout_endpoint)
    app.router.add_post("/api/billing/webhook", webhook_endpoint)

    return app


async def run_server(
    config: Optional[AppConfig] = None,
    shutdown_event: Optional[asyncio.Event] = None,
) -> None:
    """Run the billing server until shutdown signal.

    The app is cleaned up, closing the entitlement pool, however serving
    ends, including a failed startup or bind.

    Args:
        config: Application config (defaults to the process config)
        shutdown_event: Optional event to signal shutdown
    """
    config = config or get_config()
    runner = web.AppRunner(create_app(config=config))

    try:
        await runner.setup()

        site = web.TCPSite(runner, "0.0.0.0", config.port)
        await site.start()

        logger.info(f"Billing server listening on port {config.port}")

        if shutdown_event:
            await shutdown_event.wait()
        else:
            await asyncio.Event().wait()

        logger.info("Shutting down billing server...")
    finally:
        await runner.cleanup()
