import logging
import os
import time
import uuid
from typing import Any, Callable, Dict, Tuple

from fastapi import Depends, FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tact_api import handlers
from tact_api.dispatch import Dispatcher
from tact_api.errors import (
    GENERIC_FAILURE_MESSAGE,
    RATE_LIMIT_MESSAGE,
    AllProvidersFailedError,
    RateLimitExceeded,
    TactError,
)
from tact_api.models import (
    AnalysisRequest,
    HealthResponse,
    ParallaxChatRequest,
    ParallaxDraftRequest,
)
from tact_api.providers import build_providers
from tact_api.ratelimit import ANALYZE, PARALLAX_CHAT, PARALLAX_DRAFT, RateLimiter

if not logging.getLogger().handlers:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

log = logging.getLogger(__name__)

# Only honour X-Forwarded-For when a reverse proxy we control sets it
TRUST_PROXY = os.getenv("TRUST_PROXY", "").strip().lower() in ("1", "true", "yes")


def _build_rate_limiter():
    in_process = RateLimiter()
    redis_url = os.getenv("REDIS_URL", "").strip()
    if not redis_url or os.getenv("PYTEST_CURRENT_TEST"):
        return in_process
    try:
        from tact_api.redis_ratelimit import FallbackRateLimiter, RedisRateLimiter

        return FallbackRateLimiter(RedisRateLimiter(redis_url, limits=in_process.limits), in_process)
    except Exception:
        log.exception("ratelimit: could not set up Redis limiter; using in-process counters")
        return in_process


app = FastAPI(title="Tact API")
app.state.dispatcher = Dispatcher(build_providers())
app.state.rate_limiter = _build_rate_limiter()

allow_origins = [o.strip() for o in os.getenv("ALLOW_ORIGINS", "*").split(",") if o.strip()]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins or ["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = str(uuid.uuid4())
    start = time.time()
    request.state.request_id = rid
    response = None
    try:
        response = await call_next(request)
        response.headers["X-Request-Id"] = rid
        return response
    finally:
        dur_ms = int((time.time() - start) * 1000)
        log.info(
            "rid=%s method=%s path=%s status=%s dur_ms=%d",
            rid,
            request.method,
            request.url.path,
            getattr(response, "status_code", "?"),
            dur_ms,
        )


# ---------------------------------------------------------------------------
# Error translation: clients only ever see {"error": "..."}
# ---------------------------------------------------------------------------


def _rate_limit_headers(remaining: int, reset_ts: int, *, limited: bool = False) -> Dict[str, str]:
    headers = {
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Reset": str(reset_ts),
    }
    if limited:
        wait_seconds = max(0, reset_ts - int(time.time()))
        headers["Retry-After"] = str(wait_seconds)
    return headers


@app.exception_handler(RateLimitExceeded)
async def _on_rate_limited(request: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"error": RATE_LIMIT_MESSAGE},
        headers=_rate_limit_headers(exc.remaining, exc.reset_ts, limited=True),
    )


@app.exception_handler(AllProvidersFailedError)
async def _on_all_failed(request: Request, exc: AllProvidersFailedError):
    causes = "; ".join(str(e) for e in exc.errors) or "no provider configured"
    log.error("rid=%s path=%s providers exhausted: %s", getattr(request.state, "request_id", "?"), request.url.path, causes)
    return JSONResponse(status_code=500, content={"error": GENERIC_FAILURE_MESSAGE})


@app.exception_handler(TactError)
async def _on_tact_error(request: Request, exc: TactError):
    if exc.status_code >= 500:
        log.error("rid=%s path=%s internal error: %s", getattr(request.state, "request_id", "?"), request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.public_message})


@app.exception_handler(RequestValidationError)
async def _on_bad_body(request: Request, exc: RequestValidationError):
    errs = exc.errors()
    first = errs[0] if errs else {}
    loc = ".".join(str(p) for p in first.get("loc", ()) if p != "body") or "body"
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {loc}: {first.get('msg', 'invalid')}"})


@app.exception_handler(Exception)
async def _on_unexpected(request: Request, exc: Exception):
    log.exception("rid=%s path=%s unexpected error", getattr(request.state, "request_id", "?"), request.url.path)
    return JSONResponse(status_code=500, content={"error": GENERIC_FAILURE_MESSAGE})


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def get_rate_limiter(request: Request):
    return request.app.state.rate_limiter


def extract_client_key(request: Request) -> str:
    """Rate-limit key: the socket peer, or the first X-Forwarded-For hop when TRUST_PROXY is on."""
    forwarded = request.headers.get("x-forwarded-for", "") if TRUST_PROXY else ""
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "anon"


def rate_limited(bucket: str) -> Callable[..., Tuple[bool, int, int]]:
    def _check(request: Request, response: Response, limiter=Depends(get_rate_limiter)) -> Tuple[bool, int, int]:
        client_key = extract_client_key(request)
        allowed, remaining, reset_ts = limiter.check_and_increment(bucket, client_key)
        if not allowed:
            log.info("rate_limit bucket=%s key=%s rejected reset=%d", bucket, client_key, reset_ts)
            raise RateLimitExceeded(bucket, remaining, reset_ts)
        response.headers.update(_rate_limit_headers(remaining, reset_ts))
        return allowed, remaining, reset_ts

    return _check


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@app.get("/api/health", response_model=HealthResponse)
async def health(dispatcher: Dispatcher = Depends(get_dispatcher)) -> Dict[str, str]:
    return {"status": "ok", "provider": ",".join(dispatcher.available_names()) or "none"}


@app.post("/api/analyze", dependencies=[Depends(rate_limited(ANALYZE))])
async def analyze_endpoint(req: AnalysisRequest, dispatcher: Dispatcher = Depends(get_dispatcher)) -> Dict[str, Any]:
    return await handlers.analyze(dispatcher, req.text, req.settings)


@app.post("/api/parallax/chat", dependencies=[Depends(rate_limited(PARALLAX_CHAT))])
async def parallax_chat_endpoint(req: ParallaxChatRequest, dispatcher: Dispatcher = Depends(get_dispatcher)) -> Dict[str, Any]:
    return await handlers.parallax_chat(dispatcher, req.message)


@app.post("/api/parallax/draft", dependencies=[Depends(rate_limited(PARALLAX_DRAFT))])
async def parallax_draft_endpoint(req: ParallaxDraftRequest, dispatcher: Dispatcher = Depends(get_dispatcher)) -> Dict[str, Any]:
    return await handlers.parallax_draft(dispatcher, req.situation, req.strategy, req.receiver)
