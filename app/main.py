"""
HTTP Entry Points for Prospera

Exposes the batch routines as functions the frontend and the cron
scheduler can call:

    POST /functions/generate-ai-insights   (user token)
    POST /functions/generate-alerts        (user token)
    POST /functions/monthly-renewal        (user token)
    POST /functions/financial-summary      (user token)
    POST /functions/pay-bills              (user token)
    POST /functions/process-email-queue    (x-admin-key)
    GET  /health

DESIGN PRINCIPLES:
1. Authorization is checked before any processing
2. A caller may only act on their own user id
3. Errors come back as {"error": message}
"""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from prospera import __version__
from prospera.audit import get_logger
from prospera.config import get_settings, validate_all_settings
from prospera.dashboard import summarize
from prospera.models import utc_now
from prospera.orchestrator import AppComponents, create_app_components
from prospera.services.storage import NotFoundError, StorageError


logger = get_logger(__name__)

app = FastAPI(
    title="Prospera",
    version=__version__,
    debug=get_settings().app.debug_mode,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


class UserRequest(BaseModel):
    userId: Optional[str] = None


class AlertsRequest(UserRequest):
    persist: bool = False


class PayBillsRequest(UserRequest):
    billIds: list[UUID] = []
    amount: Optional[float] = None
    paymentMethod: Optional[str] = None
    paymentDate: Optional[date] = None


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"error": str(exc)})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.error("request_failed", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"error": str(exc)})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    components = getattr(request.app.state, "components", None)
    if components is not None:
        await components.audit_logger.log_error(
            type(exc).__name__, str(exc), details={"path": request.url.path}
        )
    return JSONResponse(status_code=500, content={"error": str(exc)})


def get_components(request: Request) -> AppComponents:
    """Components are created on first use and kept on the app."""
    components = getattr(request.app.state, "components", None)
    if components is None:
        components = create_app_components()
        request.app.state.components = components
    return components


async def _authorize_user(
    endpoint: str,
    body: UserRequest,
    authorization: Optional[str],
    components: AppComponents,
) -> UUID:
    """
    Resolve the caller and check it is acting on itself.

    400 without userId, 401 for a missing/invalid token,
    403 when the token belongs to someone else.
    """
    audit = components.audit_logger

    if not body.userId:
        raise HTTPException(status_code=400, detail="Missing required parameter: userId")

    token = (authorization or "").removeprefix("Bearer ").strip()
    caller = await components.store.resolve_user_id(token) if token else None
    if caller is None:
        await audit.log_authorization_rejected(endpoint, "invalid token")
        raise HTTPException(status_code=401, detail="Failed to authenticate user")

    if str(caller) != body.userId:
        await audit.log_authorization_rejected(endpoint, "user mismatch")
        raise HTTPException(status_code=403, detail="Unauthorized access")

    return caller


@app.get("/health")
def health():
    return {
        "status": "ok",
        "version": __version__,
        "settings": validate_all_settings(),
    }


@app.post("/functions/generate-ai-insights")
async def generate_ai_insights(
    body: UserRequest,
    authorization: Optional[str] = Header(default=None),
    components: AppComponents = Depends(get_components),
):
    user_id = await _authorize_user(
        "generate-ai-insights", body, authorization, components
    )
    report = await components.insight_generator.generate(user_id)
    return report.model_dump(mode="json", by_alias=True, exclude_none=True)


@app.post("/functions/generate-alerts")
async def generate_alerts(
    body: AlertsRequest,
    authorization: Optional[str] = Header(default=None),
    components: AppComponents = Depends(get_components),
):
    user_id = await _authorize_user("generate-alerts", body, authorization, components)
    alerts = await components.alert_generator.generate(user_id, persist=body.persist)
    return [a.model_dump(mode="json") for a in alerts]


@app.post("/functions/monthly-renewal")
async def monthly_renewal(
    body: UserRequest,
    authorization: Optional[str] = Header(default=None),
    components: AppComponents = Depends(get_components),
):
    user_id = await _authorize_user("monthly-renewal", body, authorization, components)
    report = await components.renewal_job.run(user_id)
    return {**report.model_dump(mode="json"), "status": report.status}


@app.post("/functions/process-email-queue")
async def process_email_queue(
    x_admin_key: Optional[str] = Header(default=None),
    components: AppComponents = Depends(get_components),
):
    expected = get_settings().app.cron_job_key
    if not expected or x_admin_key != expected:
        await components.audit_logger.log_authorization_rejected(
            "process-email-queue", "bad admin key"
        )
        raise HTTPException(status_code=401, detail="Unauthorized")

    report = await components.dispatcher.process_all()
    return {"success": True, "results": report.to_response()}


@app.post("/functions/financial-summary")
async def financial_summary(
    body: UserRequest,
    authorization: Optional[str] = Header(default=None),
    components: AppComponents = Depends(get_components),
):
    user_id = await _authorize_user("financial-summary", body, authorization, components)
    snapshot = await components.repository.load_snapshot(user_id)
    summary = summarize(snapshot, utc_now().date())
    return {**summary.model_dump(mode="json"), "unavailable": snapshot.unavailable}


@app.post("/functions/pay-bills")
async def pay_bills(
    body: PayBillsRequest,
    authorization: Optional[str] = Header(default=None),
    components: AppComponents = Depends(get_components),
):
    """
    One bill id pays that bill (partially when amount is short), several
    pay them in full, none pays every bill due today or earlier.
    """
    user_id = await _authorize_user("pay-bills", body, authorization, components)
    payments = components.bill_payments

    if len(body.billIds) == 1:
        bill = await payments.pay(
            user_id,
            body.billIds[0],
            amount=body.amount,
            payment_method=body.paymentMethod,
            payment_date=body.paymentDate,
        )
        return {"paid": 1, "bill": bill.model_dump(mode="json")}

    if body.billIds:
        paid = await payments.pay_many(
            user_id, body.billIds, body.paymentMethod, body.paymentDate
        )
    else:
        paid = await payments.pay_all_due(
            user_id, body.paymentDate or utc_now().date(), body.paymentMethod
        )
    return {"paid": paid}
