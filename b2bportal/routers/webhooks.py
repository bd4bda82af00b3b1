import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from b2bportal.core.api_docs import error_responses
from b2bportal.core.deps import get_coordinator, get_db
from b2bportal.core.id_utils import generate_id
from b2bportal.core.observability import log_event
from b2bportal.models.webhook import WebhookDelivery
from b2bportal.schemas.webhook import WebhookAckOut
from b2bportal.services.order_lifecycle import LifecycleOutcome, OrderLifecycleCoordinator
from b2bportal.services.webhook_adapters import (
    WEBHOOK_TOPICS,
    WebhookPayloadError,
    normalize_topic,
    verify_shopify_signature,
)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = logging.getLogger("b2bportal.webhooks")


@router.post(
    "/{topic:path}",
    response_model=WebhookAckOut,
    summary="Receive a Shopify order or draft order webhook",
    responses=error_responses(400, 401, 500),
)
async def receive_webhook(
    topic: str,
    request: Request,
    db: Session = Depends(get_db),
    coordinator: OrderLifecycleCoordinator = Depends(get_coordinator),
):
    raw_body = await request.body()
    if not verify_shopify_signature(raw_body, request.headers.get("X-Shopify-Hmac-Sha256")):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    normalized_topic = normalize_topic(topic)
    handler = WEBHOOK_TOPICS.get(normalized_topic)
    if handler is None:
        raise HTTPException(status_code=400, detail=f"Unsupported webhook topic: {topic}")

    shop_domain = (request.headers.get("X-Shopify-Shop-Domain") or "").strip().lower()
    if not shop_domain:
        raise HTTPException(status_code=400, detail="Missing shop domain header")

    try:
        payload = json.loads(raw_body or b"null")
    except ValueError:
        raise HTTPException(status_code=400, detail="Webhook body is not valid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Webhook body must be a JSON object")

    webhook_id = (request.headers.get("X-Shopify-Webhook-Id") or "").strip() or None
    if webhook_id:
        duplicate = db.execute(
            select(WebhookDelivery).where(WebhookDelivery.webhook_id == webhook_id)
        ).scalar_one_or_none()
        if duplicate:
            return WebhookAckOut(
                ok=True,
                topic=normalized_topic,
                action=duplicate.outcome,
                duplicate=True,
            )

    try:
        outcome = handler(coordinator, shop_domain, payload)
    except WebhookPayloadError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except Exception as exc:
        # Failures are logged and acknowledged.
        db.rollback()
        log_event(
            logger,
            "webhook_processing_failed",
            level=logging.ERROR,
            topic=normalized_topic,
            shop_domain=shop_domain,
            webhook_id=webhook_id,
            error=str(exc),
        )
        outcome = LifecycleOutcome(action="failed", detail=str(exc)[:200])

    log_event(
        logger,
        "webhook_processed",
        topic=normalized_topic,
        shop_domain=shop_domain,
        webhook_id=webhook_id,
        action=outcome.action,
        order_id=outcome.order_id,
        detail=outcome.detail,
    )

    if webhook_id:
        db.add(
            WebhookDelivery(
                id=generate_id(),
                shop_domain=shop_domain,
                topic=normalized_topic,
                webhook_id=webhook_id,
                outcome=outcome.action,
                payload_json=payload,
            )
        )
        try:
            db.commit()
        except IntegrityError:
            db.rollback()

    return WebhookAckOut(
        ok=True,
        topic=normalized_topic,
        action=outcome.action,
        order_id=outcome.order_id,
        detail=outcome.detail,
        duplicate=False,
    )
