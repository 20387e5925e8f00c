"""FastAPI application serving the webhook endpoint."""

from __future__ import annotations

from fastapi import BackgroundTasks, FastAPI, Request, Response
from fastapi.responses import JSONResponse

from webman.webhook.ingress import PayloadError, WebhookIngress


def create_webhook_app(endpoint: str, ingress: WebhookIngress) -> FastAPI:
    """Create the webhook app with a single POST route at ``endpoint``."""
    app = FastAPI(docs_url=None, redoc_url=None, openapi_url=None)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.post(endpoint, status_code=202)
    async def webhook(request: Request, background: BackgroundTasks) -> Response:
        try:
            envelope = ingress.accept(await request.body())
        except PayloadError as exc:
            return JSONResponse(
                {"error": {"message": str(exc)}},
                status_code=400,
            )
        # runs after the 202 has been sent
        background.add_task(ingress.publish, envelope)
        return Response(status_code=202, background=background)

    return app
