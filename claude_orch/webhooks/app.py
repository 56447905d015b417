"""FastAPI application receiving GitHub and Azure DevOps webhooks."""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException, Request

from ..core.repo_scanner import RepoResolver
from ..core.task_store import TaskStore
from ..models.config import OrchConfig
from ..models.task import TaskRequest
from .ado import NOT_PROCESSED, AdoEventMapper
from .github import EVENT_HEADER, SIGNATURE_HEADER, parse_github_event, verify_signature

logger = logging.getLogger(__name__)


def _load_json(body: bytes) -> Any:
    try:
        return json.loads(body)
    except ValueError:
        return None


def create_app(store: TaskStore, resolver: RepoResolver, config: OrchConfig,
               on_created: Optional[Callable[[], None]] = None) -> FastAPI:
    """Build the webhook app.

    Args:
        store: Task store new tasks are created in
        resolver: Maps repository names onto local working trees
        config: Orchestrator configuration (webhook secret, ADO organization)
        on_created: Called after each task is created, e.g. to wake the dispatcher
    """
    app = FastAPI(title="Claude Orch Webhooks")
    ado_mapper = AdoEventMapper(config.ado.organization, resolver.find_project_repo)

    async def create_from(request: TaskRequest) -> Dict[str, Any]:
        repo_path = await asyncio.to_thread(resolver.resolve_repo_path, request.repo)
        task = store.create_task(request.type, request.repo, str(repo_path), request.context)
        logger.info(f"Created {request.type.value} task #{task.id} for {request.repo} "
                    f"({request.context.event})")
        if on_created:
            on_created()
        return {"taskId": task.id, "message": f"{request.type.value} task created"}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/webhooks/github")
    async def github_webhook(request: Request):
        body = await request.body()
        secret = config.github.webhook_secret
        if secret and not verify_signature(secret, body, request.headers.get(SIGNATURE_HEADER)):
            logger.warning("Rejected GitHub webhook with invalid signature")
            raise HTTPException(status_code=401, detail="Invalid signature")

        event = request.headers.get(EVENT_HEADER)
        task_request = parse_github_event(event, _load_json(body))
        if task_request is None:
            return {"message": NOT_PROCESSED, "event": event}
        return await create_from(task_request)

    @app.post("/webhooks/ado")
    async def ado_webhook(request: Request):
        payload = _load_json(await request.body())
        # the project lookup may scan the base directory
        task_request, message = await asyncio.to_thread(ado_mapper.map, payload)
        if task_request is None:
            event = payload.get("eventType") if isinstance(payload, dict) else None
            return {"message": message, "eventType": event}
        response = await create_from(task_request)
        response["message"] = message
        return response

    return app
