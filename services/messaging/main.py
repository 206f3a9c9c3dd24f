"""Messaging service API built with FastAPI.

This service is the WhatsApp gateway used by the web service's notification
fan-out. Submissions are validated with Pydantic, stored in the SQLAlchemy
outbox (``repo.MessagesRepo``) and acknowledged with 202 right away; the
actual Twilio call runs as a background task so submitters are never held up
by the provider.
"""

import uuid
import logging
import time
from typing import Annotated, Optional

from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel, Field, constr
from pythonjsonlogger import jsonlogger
from sqlalchemy import text

from repo import MessagesRepo, IdempotencyConflict, engine, init_db
from provider import TwilioSender

app = FastAPI(title="Messaging Service")

Phone = constr(pattern=r"^\+?[0-9]{6,15}$")

logger = logging.getLogger("messaging")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


@app.on_event("startup")
def _startup_db():
    # wait briefly until the DB accepts connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()


class MessageRequest(BaseModel):
    """Request body for the messages endpoint.

    Attributes:
        to: Destination phone number (digits, optional leading +).
        body: Message text.
    """
    to: Phone
    body: str = Field(min_length=1, max_length=1600)


class MessageResponse(BaseModel):
    message_id: uuid.UUID
    status: str


def get_sender() -> TwilioSender:
    return TwilioSender()


def deliver(message_id: uuid.UUID, to_phone: str, body: str) -> None:
    result = get_sender().deliver(to_phone, body)
    MessagesRepo().mark(message_id, result.status, provider_sid=result.provider_sid, error=result.error)


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/messages", response_model=MessageResponse, status_code=202)
def submit_message(
    req: MessageRequest,
    background: BackgroundTasks,
    idempotency_key: Annotated[Optional[str], Header(alias="Idempotency-Key")] = None,
):
    """Queue a message for delivery.

    Without an ``Idempotency-Key`` every call queues a new message. With a
    key, the first call queues the message and retries with the same payload
    return it again without a second delivery; reusing the key with a
    different payload responds 409.
    """
    try:
        created, msg = MessagesRepo().enqueue(req.to, req.body, idempotency_key)
    except IdempotencyConflict:
        raise HTTPException(status_code=409, detail="IDEMPOTENCY_CONFLICT")

    if created:
        background.add_task(deliver, msg.id, msg.to_phone, msg.body)
    return MessageResponse(message_id=msg.id, status=msg.status)


@app.get("/messages/{message_id}", response_model=MessageResponse)
def get_message(message_id: uuid.UUID):
    msg = MessagesRepo().get(message_id)
    if msg is None:
        raise HTTPException(status_code=404, detail="NOT_FOUND")
    return MessageResponse(message_id=msg.id, status=msg.status)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
