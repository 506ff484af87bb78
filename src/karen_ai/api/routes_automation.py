"""Rotas de automação direta por adapter de fornecedor."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, status

from karen_ai.api.dependencies import get_adapter_registry, get_session_registry
from karen_ai.automation.adapters.base import SiteAdapter
from karen_ai.automation.adapters.registry import AdapterRegistry
from karen_ai.automation.session_registry import BrowserSessionRegistry
from karen_ai.domain.models import CamelModel, utcnow
from karen_ai.observability.logging import get_logger, short_id

logger = get_logger(__name__)

router = APIRouter(prefix="/automation", tags=["automation"])


class SessionRequest(CamelModel):
    session_id: str | None = None


class HandleIssueRequest(SessionRequest):
    issue_details: dict[str, Any] | None = None


class SearchRequest(SessionRequest):
    query: str | None = None


def _require_supported(adapters: AdapterRegistry, adapter_name: str) -> None:
    if not adapters.supports(adapter_name):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unsupported adapter: {adapter_name}",
        )


def _require_session(
    adapters: AdapterRegistry, adapter_name: str, session_id: str | None
) -> SiteAdapter:
    """Adapter ativo cuja sessão corresponde ao sessionId informado."""
    _require_supported(adapters, adapter_name)
    adapter = adapters.get_active(adapter_name)
    if (
        not session_id
        or adapter is None
        or adapter.session is None
        or adapter.session.session_id != session_id
    ):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid session ID",
        )
    return adapter


@router.post("/{adapter_name}/start")
async def start_automation(
    adapter_name: str,
    adapters: AdapterRegistry = Depends(get_adapter_registry),
) -> dict[str, Any]:
    """Inicia (ou reinicia) a sessão do adapter na página inicial."""
    _require_supported(adapters, adapter_name)
    adapter = adapters.get_or_create(adapter_name)
    if adapter is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unsupported adapter: {adapter_name}",
        )

    await adapter.close()
    result = await adapter.initialize()
    if not result.success or adapter.session is None:
        logger.error(
            "automation_start_failed",
            extra={"adapter": adapter.name, "error": result.error},
        )
        await adapters.release(adapter_name)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to start {adapter.display_name} automation: {result.error}",
        )

    session_id = adapter.session.session_id
    logger.info(
        "automation_started",
        extra={"adapter": adapter.name, "session_id": short_id(session_id)},
    )
    return {
        "success": True,
        "sessionId": session_id,
        "message": result.message,
        "screenshotUrl": result.screenshot_url,
    }


@router.post("/{adapter_name}/handle-issue")
async def handle_issue(
    adapter_name: str,
    body: HandleIssueRequest,
    adapters: AdapterRegistry = Depends(get_adapter_registry),
) -> dict[str, Any]:
    adapter = _require_session(adapters, adapter_name, body.session_id)
    if not body.issue_details:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Issue details are required",
        )
    result = await adapter.handle_customer_issue(body.issue_details)
    return result.to_payload()


@router.post("/{adapter_name}/search")
async def search(
    adapter_name: str,
    body: SearchRequest,
    adapters: AdapterRegistry = Depends(get_adapter_registry),
) -> dict[str, Any]:
    adapter = _require_session(adapters, adapter_name, body.session_id)
    if not body.query or not body.query.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Search query is required",
        )
    result = await adapter.search_for_issue(body.query)
    return result.to_payload()


@router.post("/{adapter_name}/end")
async def end_automation(
    adapter_name: str,
    body: SessionRequest,
    adapters: AdapterRegistry = Depends(get_adapter_registry),
) -> dict[str, Any]:
    adapter = _require_session(adapters, adapter_name, body.session_id)
    await adapters.release(adapter.name)
    logger.info(
        "automation_ended",
        extra={"adapter": adapter.name, "session_id": short_id(body.session_id)},
    )
    return {"success": True, "message": f"{adapter.display_name} automation session ended"}


@router.get("/sessions")
def list_sessions(
    sessions: BrowserSessionRegistry = Depends(get_session_registry),
) -> dict[str, Any]:
    """Sessões de navegador abertas com duração em segundos."""
    now = utcnow()
    active = []
    for session in sessions.list_sessions():
        session_obj = sessions.get(session["sessionId"])
        duration = (now - session_obj.started_at).total_seconds() if session_obj else 0.0
        active.append({**session, "durationSeconds": round(duration, 1)})
    return {"success": True, "activeSessions": active, "count": len(active)}
