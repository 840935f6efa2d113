"""FastAPI route definitions for the DGTL Dental API."""

from __future__ import annotations

import asyncio
import html
import json
import logging
import uuid
from collections.abc import Iterator

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from langchain_core.messages import HumanMessage
from sqlalchemy.exc import SQLAlchemyError

from dgtl_dental.admin import DEPLOY_FAILED_MESSAGE, NO_SELECTION_MESSAGE, AdminConsole
from dgtl_dental.agent import reply_text
from dgtl_dental.api.schemas import (
    AdminLoginRequest,
    AdminLoginResponse,
    ChatLogOut,
    ChatRequest,
    ChatResponse,
    CheckoutRequest,
    CheckoutResponse,
    ContactRequest,
    DemoChatRequest,
    DeployRequest,
    DeployResponse,
    EmbedResponse,
    HealthResponse,
    PracticeSummary,
    ProspectRequest,
    QAPairIn,
    QAPairOut,
    SetupRequestIn,
    SetupRequestOut,
    SignupRequest,
    SignupResponse,
    StatsResponse,
    SuccessResponse,
)
from dgtl_dental.chat.facts import DEMO_PRACTICE, public_config, unconfigured_facts
from dgtl_dental.config import PUBLIC_BASE_URL
from dgtl_dental.models import SubscriptionStatus
from dgtl_dental.services.checkout import CheckoutError
from dgtl_dental.services.completion_client import DONE_TOKEN
from dgtl_dental.services.mailer import MailerError
from dgtl_dental.services.store import PracticeNotFound
from dgtl_dental.signup import SignupError, SignupPipeline
from dgtl_dental.validation import normalize_website

logger = logging.getLogger(__name__)

router = APIRouter()

INTERNAL_ERROR = "An internal error occurred. Please try again."

_bearer = HTTPBearer(auto_error=False)


def _service(request: Request, name: str):
    """Fetch a shared resource created by the lifespan (see ``server.py``)."""
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=503,
            detail="The service is still starting up. Please try again in a moment.",
        )
    return service


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "?")


def _origin(request: Request) -> str:
    return (request.headers.get("origin") or PUBLIC_BASE_URL).rstrip("/")


def require_admin(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> str:
    token = credentials.credentials if credentials else None
    if not _service(request, "admin_sessions").is_valid(token):
        raise HTTPException(status_code=401, detail="Admin session required")
    return token


def embed_snippet(clinic_id: str, origin: str = PUBLIC_BASE_URL) -> str:
    return (
        f'<script defer src="{origin}/widget.js" '
        f'data-clinic-id="{html.escape(clinic_id, quote=True)}"></script>'
    )


def sse_event(payload: dict | str) -> str:
    data = payload if isinstance(payload, str) else json.dumps(payload)
    return f"data: {data}\n\n"


def _log_chat(store, clinic_id: str, message: str, response: str) -> None:
    try:
        store.log_chat(clinic_id, message, response)
    except Exception:
        logger.exception("Could not log chat exchange for %s", clinic_id)


# ── Health ───────────────────────────────────────────────────────────


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse()


# ── Chat ─────────────────────────────────────────────────────────────


@router.post("/chat", response_model=ChatResponse)
async def chat(body: ChatRequest, http_request: Request, background: BackgroundTasks):
    """Answer a patient message for one practice.

    ``agent.invoke()`` blocks on the Anthropic API, so it runs in a worker
    thread. The exchange is written to the chat log after the response
    has been sent. Without a ``sessionId`` the turn gets a throwaway
    thread that is deleted once it has been answered.
    """
    agent = _service(http_request, "agent")
    store = _service(http_request, "store")
    threads = _service(http_request, "threads")
    request_id = _request_id(http_request)
    if body.session_id:
        thread_id = body.session_id
        threads.touch(thread_id)
    else:
        thread_id = f"{body.clinic_id}:{uuid.uuid4().hex}"

    try:
        result = await asyncio.to_thread(
            agent.invoke,
            {"messages": [HumanMessage(content=body.message)], "clinic_id": body.clinic_id},
            config={"configurable": {"thread_id": thread_id}},
        )
    except Exception as e:
        logger.exception("[%s] Error processing chat request", request_id)
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR) from e
    finally:
        if not body.session_id:
            threads.forget(thread_id)

    reply = reply_text(result)
    if not reply:
        logger.error("[%s] Agent returned no reply", request_id)
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR)

    background.add_task(_log_chat, store, body.clinic_id, body.message, reply)
    return ChatResponse(response=reply)


@router.post("/demo-chat")
def demo_chat(body: DemoChatRequest, http_request: Request):
    """Stream a demo answer as ``data:`` lines ending with ``data: [DONE]``."""
    stream_reply = _service(http_request, "demo_stream")
    request_id = _request_id(http_request)
    history = [m.model_dump() for m in body.messages]

    def events() -> Iterator[str]:
        try:
            for delta in stream_reply(body.message, history):
                yield sse_event({"choices": [{"delta": {"content": delta}}]})
        except Exception:
            logger.exception("[%s] Demo stream failed", request_id)
        yield sse_event(DONE_TOKEN)

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache"},
    )


# ── Practice config ──────────────────────────────────────────────────


@router.get("/clinic-config")
def clinic_config(http_request: Request, clinic: str | None = None, clientId: str | None = None):  # noqa: N803
    """Public widget configuration; unknown ids get generic copy."""
    clinic_id = clientId or clinic
    if not clinic_id:
        raise HTTPException(status_code=400, detail="Client ID is required")
    if clinic_id == DEMO_PRACTICE.clinic_id:
        return public_config(DEMO_PRACTICE)

    store = _service(http_request, "store")
    practice = store.get_practice(clinic_id)
    if practice is None:
        return public_config(unconfigured_facts(clinic_id))
    return public_config(store.load_facts(clinic_id), practice.widget_config)


@router.get("/practices/{clinic_id}/embed", response_model=EmbedResponse)
def practice_embed(clinic_id: str, http_request: Request):
    if _service(http_request, "store").get_practice(clinic_id) is None:
        raise HTTPException(status_code=404, detail="Practice not found")
    return EmbedResponse(clinic_id=clinic_id, snippet=embed_snippet(clinic_id))


# ── Intake & signup ──────────────────────────────────────────────────


@router.post("/setup-requests", response_model=SetupRequestOut, status_code=201)
def create_setup_request(body: SetupRequestIn, http_request: Request):
    store = _service(http_request, "store")
    try:
        record = store.create_intake_record(
            practice_name=body.practice_name.strip(),
            website_url=normalize_website(body.website_url),
            contact_name=body.contact_name.strip(),
            email=body.email.strip(),
        )
    except SQLAlchemyError as e:
        logger.exception("[%s] Could not save setup request", _request_id(http_request))
        raise HTTPException(status_code=500, detail="Something went wrong. Please try again.") from e
    return SetupRequestOut(id=record.id, status=record.status.value)


@router.post("/signup", response_model=SignupResponse)
def signup(body: SignupRequest, http_request: Request):
    """Run the whole signup pipeline and return the checkout URL."""
    pipeline = SignupPipeline(
        _service(http_request, "store"),
        _service(http_request, "checkout"),
        account=body.account_info,
        practice=body.practice_details,
    )
    while pipeline.next():
        pass
    try:
        url = pipeline.submit(_origin(http_request))
    except SignupError as e:
        status = {"validation": 400, "checkout": 502}.get(e.stage, 500)
        raise HTTPException(status_code=status, detail=e.user_message) from e
    return SignupResponse(url=url, clinic_id=pipeline.clinic_id)


@router.post("/checkout", response_model=CheckoutResponse)
def checkout(body: CheckoutRequest, http_request: Request):
    service = _service(http_request, "checkout")
    try:
        session = service.create_session(
            clinic_id=body.clinic_id,
            email=body.email,
            practice_name=body.practice_name,
            need_install_help=body.need_install_help,
            origin=_origin(http_request),
        )
    except CheckoutError as e:
        logger.warning("[%s] Checkout failed: %s", _request_id(http_request), e)
        raise HTTPException(status_code=502, detail=str(e)) from e
    return CheckoutResponse(url=session.url, session_id=session.session_id)


# ── Mail ─────────────────────────────────────────────────────────────


@router.post("/contact", response_model=SuccessResponse)
def contact(body: ContactRequest, http_request: Request):
    mailer = _service(http_request, "mailer")
    try:
        mailer.send_contact(body.email, body.question)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except MailerError as e:
        logger.error("[%s] Contact e-mail failed: %s", _request_id(http_request), e)
        raise HTTPException(status_code=502, detail="Failed to send message. Please try again.") from e
    return SuccessResponse()


@router.post("/prospect", response_model=SuccessResponse)
def prospect(body: ProspectRequest, http_request: Request):
    mailer = _service(http_request, "mailer")
    try:
        mailer.send_prospect(body.name, body.practice, body.contact_preference, body.contact_value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except MailerError as e:
        logger.error("[%s] Prospect e-mail failed: %s", _request_id(http_request), e)
        raise HTTPException(status_code=502, detail="Failed to send message. Please try again.") from e
    return SuccessResponse()


# ── Admin ────────────────────────────────────────────────────────────


@router.post("/admin/login", response_model=AdminLoginResponse)
def admin_login(body: AdminLoginRequest, http_request: Request):
    token = _service(http_request, "admin_sessions").login(body.email, body.password)
    if token is None:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    return AdminLoginResponse(token=token)


@router.post("/admin/logout", status_code=204)
def admin_logout(http_request: Request, token: str = Depends(require_admin)):
    _service(http_request, "admin_sessions").logout(token)


@router.get("/admin/practices", response_model=list[PracticeSummary])
def admin_practices(
    http_request: Request,
    status: SubscriptionStatus | None = None,
    _: str = Depends(require_admin),
):
    return _service(http_request, "store").list_practices(status=status)


@router.post("/admin/deploy", response_model=DeployResponse)
def admin_deploy(body: DeployRequest, http_request: Request, _: str = Depends(require_admin)):
    if not body.clinic_ids:
        raise HTTPException(status_code=400, detail=NO_SELECTION_MESSAGE)
    result = AdminConsole(_service(http_request, "store")).deploy(body.clinic_ids)
    if not result.ok:
        status = 500 if result.message == DEPLOY_FAILED_MESSAGE else 400
        raise HTTPException(status_code=status, detail=result.message)
    return DeployResponse(ok=result.ok, message=result.message, updated=result.updated)


@router.get("/admin/stats", response_model=StatsResponse)
def admin_stats(http_request: Request, _: str = Depends(require_admin)):
    return AdminConsole(_service(http_request, "store")).stats()


@router.get("/admin/messages", response_model=list[ChatLogOut])
def admin_messages(http_request: Request, limit: int = 50, _: str = Depends(require_admin)):
    return _service(http_request, "store").recent_messages(limit=max(1, min(limit, 500)))


@router.get("/practices/{clinic_id}/qa", response_model=list[QAPairOut])
def list_qa(clinic_id: str, http_request: Request, _: str = Depends(require_admin)):
    return _service(http_request, "store").list_qa_pairs(clinic_id)


@router.post("/practices/{clinic_id}/qa", response_model=QAPairOut, status_code=201)
def add_qa(clinic_id: str, body: QAPairIn, http_request: Request, _: str = Depends(require_admin)):
    try:
        return _service(http_request, "store").add_qa_pair(clinic_id, body.question, body.answer)
    except PracticeNotFound as e:
        raise HTTPException(status_code=404, detail="Practice not found") from e


@router.delete("/practices/{clinic_id}/qa/{pair_id}", status_code=204)
def remove_qa(clinic_id: str, pair_id: int, http_request: Request, _: str = Depends(require_admin)):
    if not _service(http_request, "store").remove_qa_pair(clinic_id, pair_id):
        raise HTTPException(status_code=404, detail="Q&A pair not found")
