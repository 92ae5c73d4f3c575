# ecosnap/main.py
from dotenv import load_dotenv
load_dotenv()  # load .env before anything else

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials

from .agent import EcoAgent
from .ai_router import CompletionClient
from .auth import Identity, bearer, resolve_identity
from .config import Settings, load_settings
from .decisions import DecisionAnalyzer
from .schemas import ChatRequest, DecisionIn
from .storage import DecisionStore, build_store, seed_decisions
from .throttle import CallLimiter, RateLimiter

logger = logging.getLogger(__name__)

# what /chat returns when something inside us broke
CHAT_FAILURE_BODY = {
    "success": False,
    "reply": "I'm having trouble connecting. Here's a quick tip: Try reducing single-use plastics in your daily routine!",
    "suggestions": [
        "Use a reusable water bottle",
        "Bring your own shopping bags",
        "Choose products with minimal packaging",
    ],
    "confidence": 0.6,
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_app(settings: Optional[Settings] = None,
               agent: Optional[EcoAgent] = None,
               store: Optional[DecisionStore] = None,
               client: Optional[CompletionClient] = None,
               rate_limiter: Optional[RateLimiter] = None,
               seed: bool = True) -> FastAPI:
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("[config] %s", settings.asdict())

    if client is None:
        limiter = CallLimiter(settings.max_concurrency, settings.calls_per_window, settings.window_seconds)
        client = CompletionClient(api_key=settings.openai_api_key, model=settings.model, limiter=limiter)
    if not client.configured:
        logger.warning("[ai] OPENAI_API_KEY not set - replies will use fallback tips and keyword rules")
    if agent is None:
        agent = EcoAgent(client=client, settings=settings)
    if store is None:
        store = build_store(settings)
    analyzer = DecisionAnalyzer(agent.client, store)
    if rate_limiter is None:
        rate_limiter = RateLimiter(settings.rate_limit, settings.rate_window)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if seed:
            try:
                n = seed_decisions(store)
                if n:
                    logger.info("[storage] seeded %d example decisions", n)
            except Exception:
                logger.exception("[storage] seeding failed")
        yield

    app = FastAPI(title="EcoSnap", lifespan=lifespan)
    app.state.settings = settings
    app.state.agent = agent
    app.state.store = store

    def get_identity(request: Request,
                     credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer)) -> Identity:
        return resolve_identity(request, credentials, settings.jwt_secret)

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError):
        err = (exc.errors() or [{}])[0]
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        return JSONResponse({"message": err.get("msg", "Validation Error"), "field": ".".join(loc)}, status_code=400)

    @app.get("/health")
    def health():
        return {"status": "healthy", "timestamp": _now_iso(), "openai": client.configured}

    # ---- Chat -------------------------------------------------------------------
    @app.post("/chat")
    async def chat(body: ChatRequest, identity: Identity = Depends(get_identity)):
        message = (body.message or "").strip()
        if not message:
            return JSONResponse({"error": "Message is required"}, status_code=400)

        verdict = rate_limiter.check(identity.key)
        if not verdict.allowed:
            return JSONResponse({"error": "Rate limit exceeded. Please try again later.", **verdict.as_dict()},
                                status_code=429)

        logger.info("[chat] request from %s", identity.key)
        try:
            result = await agent.process_message(message, identity.key, body.preferences)
        except Exception:
            logger.exception("[chat] failed for %s", identity.key)
            return JSONResponse(CHAT_FAILURE_BODY, status_code=500)

        return {
            "success": True,
            **result.model_dump(mode="json", exclude_none=True),
            "timestamp": _now_iso(),
            "rate_limit": verdict.as_dict(),
        }

    @app.post("/chat/clear")
    async def chat_clear(identity: Identity = Depends(get_identity)):
        await agent.clear_history(identity.key)
        return {"success": True}

    @app.get("/chat/history")
    def chat_history(identity: Identity = Depends(get_identity)):
        return {"messages": [m.model_dump(mode="json") for m in agent.get_history(identity.key)]}

    @app.get("/stats")
    def stats(identity: Identity = Depends(get_identity)):
        if not (identity.authenticated and identity.email and "admin" in identity.email):
            raise HTTPException(status_code=403, detail="Unauthorized")
        return agent.stats()

    # ---- Decisions --------------------------------------------------------------
    @app.post("/decisions/analyze")
    async def analyze_decision(body: DecisionIn, identity: Identity = Depends(get_identity)):
        try:
            saved = await analyzer.analyze(body.decision, identity.user_id)
        except Exception:
            logger.exception("[decisions] analysis failed")
            return JSONResponse({"message": "Internal server error"}, status_code=500)
        return saved.model_dump(mode="json")

    @app.get("/decisions")
    def list_decisions(limit: Optional[int] = Query(None, ge=1, le=100),
                       offset: int = Query(0, ge=0),
                       identity: Identity = Depends(get_identity)):
        rows = store.list(user_id=identity.user_id, limit=limit, offset=offset)
        return [d.model_dump(mode="json") for d in rows]

    @app.get("/decisions/{decision_id}")
    def get_decision(decision_id: int):
        d = store.get(decision_id)
        if d is None:
            raise HTTPException(status_code=404, detail="Decision not found")
        return d.model_dump(mode="json")

    @app.delete("/decisions/{decision_id}")
    def delete_decision(decision_id: int):
        if not store.delete(decision_id):
            raise HTTPException(status_code=404, detail="Decision not found")
        return {"success": True}

    return app


app = create_app()
