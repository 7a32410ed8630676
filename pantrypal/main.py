import logging
import math
import os
from typing import Optional

import psycopg2
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from pantrypal import app_context
from pantrypal.app.routes.billing import router as billing_router
from pantrypal.app.routes.subscription import router as subscription_router
from pantrypal.app.routes.webhooks import router as webhooks_router

load_dotenv()

logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())


def _parse_connect_timeout(raw_value: str) -> int:
    try:
        timeout = float(raw_value)
    except ValueError as exc:
        raise ValueError("DB_CONNECT_TIMEOUT must be a number") from exc
    if timeout < 0:
        raise ValueError("DB_CONNECT_TIMEOUT must be non-negative")
    return int(math.ceil(timeout))


DB_CFG = dict(
    host=os.getenv("DB_HOST", "127.0.0.1"),
    port=int(os.getenv("DB_PORT", "5432")),
    dbname=os.getenv("DB_NAME", "pantrypal"),
    user=os.getenv("DB_USER", "pantrypal"),
    password=os.getenv("DB_PASSWORD", "pantrypal"),
    connect_timeout=_parse_connect_timeout(os.getenv("DB_CONNECT_TIMEOUT", "5")),
)

# Header set by the authentication proxy after it verifies the session.
USER_ID_HEADER = os.getenv("VERIFIED_USER_ID_HEADER", "X-Verified-User-Id")

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]


def get_conn():
    return psycopg2.connect(**DB_CFG)


def resolve_user_id(request: Request) -> Optional[str]:
    value = (request.headers.get(USER_ID_HEADER) or "").strip()
    return value or None


app = FastAPI(title="PantryPal Subscriptions API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app_context.configure(get_conn=get_conn, resolve_user_id=resolve_user_id)

app.include_router(billing_router)
app.include_router(subscription_router)
app.include_router(webhooks_router)


@app.get("/api/health")
def health():
    return {"ok": True}
