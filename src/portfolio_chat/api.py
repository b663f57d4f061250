from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Literal

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from portfolio_chat.bootstrap import AppRuntime
from portfolio_chat.exceptions import OrchestrationError, PortfolioChatError
from portfolio_chat.orchestrator import ChatRequest

_EXPOSED_HEADERS = ["x-conversation-id", "x-citations", "x-function-calls"]


class PreviousMessage(BaseModel):
    role: str
    content: str = ""


class ChatBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = ""
    conversation_id: str | None = Field(default=None, alias="conversationId")
    repo_filter: str | None = Field(default=None, alias="repoFilter")
    mode: Literal["general", "recruiter", "tech"] = "general"
    previous_messages: list[PreviousMessage] = Field(default_factory=list, alias="previousMessages")


class ExplainBody(BaseModel):
    owner: str = ""
    repo: str = ""
    path: str = ""
    question: str | None = None


def client_id(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "")
    first = forwarded.split(",")[0].strip()
    if first:
        return first
    if request.client is not None and request.client.host:
        return request.client.host
    return "unknown"


def create_app(runtime: AppRuntime, *, cors_origins: list[str] | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI):
        await runtime.sweeper.start()
        try:
            yield
        finally:
            await runtime.aclose()

    app = FastAPI(title="portfolio-chat", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins or ["*"],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=_EXPOSED_HEADERS,
    )

    @app.exception_handler(PortfolioChatError)
    async def _portfolio_error(_: Request, exc: PortfolioChatError) -> JSONResponse:
        if isinstance(exc, OrchestrationError):
            return JSONResponse({"error": str(exc), "debug": exc.debug}, status_code=exc.status_code)
        if exc.status_code >= 500:
            logger.error(f"Request failed: {type(exc).__name__}: {exc}")
            return JSONResponse({"error": "Internal server error"}, status_code=exc.status_code)
        return JSONResponse({"error": str(exc)}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(_: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"field": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return JSONResponse({"error": "Invalid request", "details": details}, status_code=400)

    @app.post("/api/chat")
    async def chat(body: ChatBody, request: Request) -> StreamingResponse:
        reply = await runtime.orchestrator.handle(
            ChatRequest(
                message=body.message,
                conversation_id=body.conversation_id,
                repo_filter=body.repo_filter,
                mode=body.mode,
                previous_messages=[m.model_dump() for m in body.previous_messages],
            ),
            client_id(request),
        )
        return StreamingResponse(
            reply.body,
            media_type="text/plain; charset=utf-8",
            headers=reply.headers(),
        )

    @app.post("/api/explain")
    async def explain(body: ExplainBody, request: Request) -> dict:
        result = await runtime.explainer.explain(
            body.owner,
            body.repo,
            body.path,
            body.question,
            client_id=client_id(request),
        )
        return {
            "success": True,
            "explanation": result.explanation,
            "url": result.url,
            "path": result.path,
            "repo": result.repo,
            "metadata": {
                "file": result.path,
                "repo": result.repo,
                "owner": result.owner,
                "url": result.url,
                "lines": result.lines,
                "size": result.size,
            },
        }

    @app.get("/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "entities": len(runtime.catalog),
            "tools": [t.name for t in runtime.tools],
        }

    return app
