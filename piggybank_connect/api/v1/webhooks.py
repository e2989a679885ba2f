"""POST /v1/webhooks/processor - signed processor events"""

from typing import Optional

from fastapi import APIRouter, Depends, Header, Request

from piggybank_connect.api.dependencies import get_request_id, get_settings, get_webhook_handler
from piggybank_connect.api.tracking import tracked
from piggybank_connect.config import Settings
from piggybank_connect.services.webhooks import WebhookHandler, verify_signature

router = APIRouter()


@router.post("/webhooks/processor")
async def receive_processor_event(
    request: Request,
    signature: Optional[str] = Header(None, alias="Stripe-Signature"),
    handler: WebhookHandler = Depends(get_webhook_handler),
    config: Settings = Depends(get_settings),
):
    """Verify the signature over the raw body, then reconcile cached account status"""
    payload = await request.body()
    with tracked(get_request_id(request), None, "handleProcessorEvent"):
        verify_signature(payload, signature, config.processor_webhook_secret, config.webhook_tolerance_seconds)
        return await handler.handle_event(payload)
