"""
WhatsApp Webhook Service

FastAPI app that receives WhatsApp webhooks from Meta Cloud API.

Responsibilities:
- Answer the subscription handshake
- Verify the signature over the raw body
- Run each delivery through the inbound pipeline before acknowledging
- Serve the operator API
"""

import json
import logging

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from stayline_core.logging import setup_logging
from stayline_core.settings import Settings, get_settings

from stayline_whatsapp.errors import AuthenticationFailure
from stayline_whatsapp.providers.meta_cloud.webhook import validate_signature, verify_webhook_challenge
from stayline_whatsapp.service.inbound_handler import ResponseOrchestrator
from stayline_whatsapp.streams.activity import ActivityEvent, ActivitySink

from whatsapp_webhook.deps import (
    get_activity_sink,
    get_drafter,
    get_orchestrator,
    get_whatsapp_provider,
)
from whatsapp_webhook.operator_api import router as operator_router

setup_logging()
logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-hub-signature-256"

app = FastAPI(
    title="Stayline WhatsApp Webhook",
    description="Receives WhatsApp webhooks and answers guests with gated AI replies",
    version="1.0.0",
)
app.include_router(operator_router)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(status_code=400, content={"detail": "Invalid request", "errors": jsonable_encoder(exc.errors())})


@app.exception_handler(AuthenticationFailure)
async def authentication_failure_handler(request: Request, exc: AuthenticationFailure):
    """Bad signature is 401; a failed subscription handshake is 403."""
    status_code = 403 if exc.code == "verification_failed" else 401
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.on_event("shutdown")
async def shutdown():
    """Close outbound HTTP clients."""
    await get_whatsapp_provider().close()
    await get_drafter().close()


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy", "service": "whatsapp-webhook"}


@app.get("/webhooks/whatsapp")
async def verify_webhook(
    hub_mode: str = Query(None, alias="hub.mode"),
    hub_verify_token: str = Query(None, alias="hub.verify_token"),
    hub_challenge: str = Query(None, alias="hub.challenge"),
    settings: Settings = Depends(get_settings),
):
    """
    Handle Meta webhook verification.

    Meta sends a GET request with hub.mode, hub.verify_token, and hub.challenge.
    We must return hub.challenge if the token matches.
    """
    logger.info(
        "Webhook verification request",
        extra={
            "mode": hub_mode,
            "token_received": bool(hub_verify_token),
        },
    )

    challenge = verify_webhook_challenge(
        mode=hub_mode,
        token=hub_verify_token,
        challenge=hub_challenge,
        verify_token=settings.WHATSAPP_VERIFY_TOKEN,
    )

    if challenge is not None:
        return Response(content=challenge, media_type="text/plain")

    raise AuthenticationFailure("Verification failed", code="verification_failed")


@app.post("/webhooks/whatsapp")
async def receive_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    orchestrator: ResponseOrchestrator = Depends(get_orchestrator),
    activity: ActivitySink = Depends(get_activity_sink),
):
    """
    Receive a webhook delivery from Meta Cloud API.

    Flow:
    1. Validate the signature over the exact bytes received
    2. Parse JSON
    3. Process every change (messages, statuses) in order
    4. Acknowledge; 500 only if processing blew up outside the per-message boundaries
    """
    body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)

    if not validate_signature(body, signature, settings.WHATSAPP_APP_SECRET):
        logger.warning("Invalid Meta webhook signature")
        activity.emit(
            ActivityEvent.WEBHOOK_REJECTED,
            reason="invalid_signature",
            has_signature=bool(signature),
            body_length=len(body),
        )
        raise AuthenticationFailure("Invalid signature", code="invalid_signature")

    try:
        payload = json.loads(body)
    except ValueError:
        logger.warning("Invalid JSON payload")
        raise HTTPException(status_code=400, detail="Invalid JSON")

    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Payload must be a JSON object")

    activity.emit(
        ActivityEvent.WEBHOOK_RECEIVED,
        object=payload.get("object"),
        entries=len(payload.get("entry") or []),
    )

    try:
        result = await orchestrator.handle_payload(payload)
    except Exception as e:
        logger.error(f"Error processing webhook: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"error": "Processing failed"})

    return {"success": True, **result.to_dict()}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8090)
