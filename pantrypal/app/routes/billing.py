"""API routes exposing checkout, portal and price information."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...app_context import get_user_id
from ..billing import (
    MisconfiguredError,
    NoBillingCustomerError,
    PriceNotConfiguredError,
    UpstreamRequestError,
    UpstreamUnavailableError,
)
from ..schemas.billing import (
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    PortalSessionRequest,
    PortalSessionResponse,
    PriceListResponse,
)
from ..services.billing import get_billing_service


logger = logging.getLogger("billing")

router = APIRouter(prefix="/api/subscription", tags=["subscription"])


def _provider_failure(exc: Exception) -> HTTPException:
    logger.warning("Billing provider call failed: %s", exc)
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail="Billing provider request failed",
    )


def _misconfigured(exc: Exception) -> HTTPException:
    logger.error("Billing misconfigured: %s", exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail="Billing is not configured",
    )


@router.post("/checkout", response_model=CheckoutSessionResponse)
def create_checkout_session(
    payload: CheckoutSessionRequest,
    *,
    user_id: str = Depends(get_user_id),
) -> CheckoutSessionResponse:
    service = get_billing_service()
    try:
        session = service.create_checkout_session(
            user_id=user_id,
            tier=payload.tier,
            billing_interval=payload.billing_interval,
            success_url=payload.success_url,
            cancel_url=payload.cancel_url,
        )
    except (ValueError, PriceNotConfiguredError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except MisconfiguredError as exc:
        raise _misconfigured(exc) from exc
    except (UpstreamUnavailableError, UpstreamRequestError) as exc:
        raise _provider_failure(exc) from exc
    return CheckoutSessionResponse.from_checkout(session)


@router.post("/portal", response_model=PortalSessionResponse)
def create_portal_session(
    payload: PortalSessionRequest,
    *,
    user_id: str = Depends(get_user_id),
) -> PortalSessionResponse:
    service = get_billing_service()
    try:
        session = service.create_portal_session(user_id=user_id, return_url=payload.return_url)
    except NoBillingCustomerError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except MisconfiguredError as exc:
        raise _misconfigured(exc) from exc
    except (UpstreamUnavailableError, UpstreamRequestError) as exc:
        raise _provider_failure(exc) from exc
    return PortalSessionResponse.from_portal(session)


@router.get("/prices", response_model=PriceListResponse)
def list_prices() -> PriceListResponse:
    service = get_billing_service()
    return PriceListResponse(prices=service.price_listing())
