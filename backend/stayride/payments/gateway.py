"""Async client for the hosted-checkout payment gateway.

The gateway takes a form-encoded session request and answers with JSON
containing ``GatewayPageURL``, the page the guest is redirected to. Payment
results come back later through the success/IPN callbacks handled in
``stayride.api.v1.webhooks``.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

import httpx

from stayride.config import Settings, settings
from stayride.errors import UpstreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChargeRequest:
    """Everything the gateway needs to open a checkout session."""

    transaction_id: str
    amount: Decimal
    customer_name: str
    customer_email: str
    customer_phone: str | None
    product_name: str
    success_url: str
    fail_url: str
    cancel_url: str
    ipn_url: str | None = None


def get_gateway_client(config: Settings = settings) -> httpx.AsyncClient:
    """Create an HTTP client with the gateway timeout applied."""
    return httpx.AsyncClient(timeout=config.gateway_timeout_seconds)


def build_form(request: ChargeRequest, config: Settings = settings) -> dict[str, str]:
    form = {
        "store_id": config.gateway_store_id,
        "store_passwd": config.gateway_store_password,
        "total_amount": str(request.amount),
        "currency": config.gateway_currency,
        "tran_id": request.transaction_id,
        "success_url": request.success_url,
        "fail_url": request.fail_url,
        "cancel_url": request.cancel_url,
        "cus_name": request.customer_name,
        "cus_email": request.customer_email,
        "cus_phone": request.customer_phone or "",
        "shipping_method": "NO",
        "product_name": request.product_name,
        "product_category": "Reservation",
        "product_profile": "general",
    }
    if request.ipn_url:
        form["ipn_url"] = request.ipn_url
    return form


async def initiate_charge(request: ChargeRequest, config: Settings = settings) -> str:
    """Open a checkout session and return the gateway page URL.

    Raises:
        UpstreamError: If the gateway is unreachable, answers with an error
            status, or the response carries no ``GatewayPageURL``.
    """
    logger.info("Initiating gateway charge %s for %s", request.transaction_id, request.amount)
    async with get_gateway_client(config) as client:
        try:
            response = await client.post(config.gateway_api_url, data=build_form(request, config))
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPError as e:
            logger.warning("Gateway request for %s failed: %s", request.transaction_id, e)
            raise UpstreamError("Payment initiation failed") from e
        except ValueError as e:
            logger.warning("Gateway returned a non-JSON body for %s", request.transaction_id)
            raise UpstreamError("Payment initiation failed") from e

    url = body.get("GatewayPageURL") if isinstance(body, dict) else None
    if not url:
        logger.warning(
            "Gateway response for %s has no page URL (status=%s)",
            request.transaction_id,
            body.get("status") if isinstance(body, dict) else None,
        )
        raise UpstreamError("Payment gateway URL missing")
    return url
