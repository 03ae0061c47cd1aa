import logging
import math
import os
from contextlib import asynccontextmanager
from typing import Optional

import psycopg2
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from jose import JWTError, jwt
from pydantic import BaseModel, ConfigDict

from applyforme import app_context
from applyforme.app.routes.payfast import router as payfast_router
from applyforme.payfast_config import load_payfast_config
from applyforme.renewals import (
    get_renewal_metrics,
    shutdown_renewal_scheduler,
    start_renewal_scheduler,
)

load_dotenv()

logger = logging.getLogger("payments")


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
    dbname=os.getenv("DB_NAME", "applyforme"),
    user=os.getenv("DB_USER", "applyforme"),
    password=os.getenv("DB_PASSWORD", "applyforme"),
    connect_timeout=_parse_connect_timeout(os.getenv("DB_CONNECT_TIMEOUT", "5")),
)

JWT_SECRET_KEY = os.getenv("SUPABASE_JWT_SECRET", "dev-secret-change-me")
JWT_ALGORITHM = "HS256"
JWT_AUDIENCE = os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated")
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]


class CurrentUser(BaseModel):
    id: str
    email: Optional[str] = None

    model_config = ConfigDict(frozen=True)


def get_conn():
    return psycopg2.connect(**DB_CFG)


def resolve_user_from_token(token: str) -> Optional[CurrentUser]:
    try:
        claims = jwt.decode(token, JWT_SECRET_KEY, algorithms=[JWT_ALGORITHM], audience=JWT_AUDIENCE)
    except JWTError:
        return None
    subject = claims.get("sub")
    if not subject:
        return None
    return CurrentUser(id=str(subject), email=claims.get("email"))


def get_current_user(authorization: Optional[str] = None) -> CurrentUser:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    user = resolve_user_from_token(token.strip())
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user


app_context.configure(get_conn=get_conn, get_current_user=get_current_user)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    config = load_payfast_config()
    if config.renewals_enabled:
        start_renewal_scheduler(interval_seconds=config.renewal_interval_seconds)
    else:
        logger.info("Subscription renewals disabled; scheduler not started")
    try:
        yield
    finally:
        shutdown_renewal_scheduler()


app = FastAPI(title="ApplyForMe Payments API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(payfast_router)


@app.get("/health")
def health():
    return {"ok": True}


@app.get("/api/payfast/renewals/metrics")
def renewal_metrics():
    return get_renewal_metrics()
