"""
Event Tracking Endpoints

Storefront pages post page views, product clicks, lead submissions and
purchases here. Bodies use camelCase keys; UTM parameters keep their
``utm_*`` names.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request, Response

from storefront_core.analytics.tracking import TrackingResponse, TrackingService
from storefront_core.serving.api.dependencies import get_tracking_service

router = APIRouter()


def _client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip
    return request.client.host if request.client else None


def _with_user_agent(body: Dict[str, Any], request: Request) -> Dict[str, Any]:
    if not body.get("userAgent") and not body.get("user_agent"):
        user_agent = request.headers.get("User-Agent")
        if user_agent:
            body = {**body, "userAgent": user_agent}
    return body


def _respond(result: TrackingResponse, response: Response) -> TrackingResponse:
    if not result.success:
        response.status_code = 400
    return result


@router.post("/page-view", response_model=TrackingResponse)
async def track_page_view(
    request: Request,
    response: Response,
    body: Dict[str, Any] = Body(...),
    tracking: TrackingService = Depends(get_tracking_service),
) -> TrackingResponse:
    result = await tracking.track_page_view(_with_user_agent(body, request), ip=_client_ip(request))
    return _respond(result, response)


@router.post("/product-click", response_model=TrackingResponse)
async def track_product_click(
    request: Request,
    response: Response,
    body: Dict[str, Any] = Body(...),
    tracking: TrackingService = Depends(get_tracking_service),
) -> TrackingResponse:
    result = await tracking.track_product_click(body, ip=_client_ip(request))
    return _respond(result, response)


@router.post("/lead", response_model=TrackingResponse)
async def track_lead_submission(
    request: Request,
    response: Response,
    body: Dict[str, Any] = Body(...),
    tracking: TrackingService = Depends(get_tracking_service),
) -> TrackingResponse:
    result = await tracking.track_lead_submission(body, ip=_client_ip(request))
    return _respond(result, response)


@router.post("/purchase", response_model=TrackingResponse)
async def track_purchase(
    request: Request,
    response: Response,
    body: Dict[str, Any] = Body(...),
    tracking: TrackingService = Depends(get_tracking_service),
) -> TrackingResponse:
    result = await tracking.track_purchase(body, ip=_client_ip(request))
    return _respond(result, response)
