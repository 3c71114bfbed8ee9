"""
main.py — FastAPI Application Entry Point
Excel Analytics API
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Depends, File, Form, Request, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import text
from loguru import logger
from datetime import datetime
from typing import Optional

import httpx

from excel_analytics import admin, auth, charts, ingestion, insights
from excel_analytics.auth import CurrentUser, get_current_user, require_admin
from excel_analytics.config import settings
from excel_analytics.database import get_db, init_db, close_db
from excel_analytics.errors import AppError, StorageError, Unauthenticated
from excel_analytics.utils import (
    ChartCreate, ChartUpdate, FirebaseLoginRequest, ForgotPasswordRequest,
    InsightRequest, LoginRequest, ResetPasswordRequest, RoleUpdate,
    TokenResponse, UserCreate,
)

API = settings.API_PREFIX


# ── Lifespan ──────────────────────────────────────────────────────────────────
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await init_db()
    logger.info(
        f"Uploads: {settings.UPLOAD_DIR} (max {settings.MAX_UPLOAD_MB}MB, "
        f"{', '.join(settings.ALLOWED_EXTENSIONS)})"
    )
    yield
    await close_db()
    logger.info("Application shutdown complete.")


# ── App ───────────────────────────────────────────────────────────────────────
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=(
        "Spreadsheet analytics backend: upload Excel/CSV files, auto-derive charts, "
        "save and pin chart configurations, and request AI-written chart summaries."
    ),
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ═══════════════════════════════════════════════════════════════════════════════
# ERROR HANDLERS
# ═══════════════════════════════════════════════════════════════════════════════
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message}, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": message, "errors": jsonable_encoder(errors)},
    )


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error(f"Storage failure on {request.method} {request.url.path}: {exc}")
    err = StorageError()
    return JSONResponse(status_code=err.status_code, content={"message": err.message})


# ═══════════════════════════════════════════════════════════════════════════════
# HEALTH
# ═══════════════════════════════════════════════════════════════════════════════
@app.get("/health", tags=["System"])
async def health_check(db: AsyncSession = Depends(get_db)):
    await db.execute(text("SELECT 1"))
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": settings.APP_VERSION,
    }


@app.get("/", tags=["System"])
async def root():
    return {"service": settings.APP_NAME, "version": settings.APP_VERSION, "docs": "/docs"}


# ═══════════════════════════════════════════════════════════════════════════════
# AUTH
# ═══════════════════════════════════════════════════════════════════════════════
@app.post(f"{API}/auth/register", tags=["Auth"], status_code=201)
async def register(payload: UserCreate, db: AsyncSession = Depends(get_db)):
    await auth.register_user(db, payload)
    return {"message": "User registered successfully"}


@app.post(f"{API}/auth/login", response_model=TokenResponse, tags=["Auth"])
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)):
    return await auth.login_user(db, payload.email, payload.password)


@app.post(f"{API}/auth/firebase-login", response_model=TokenResponse, tags=["Auth"])
async def firebase_login(payload: FirebaseLoginRequest, db: AsyncSession = Depends(get_db)):
    return await auth.federated_login(db, payload.id_token)


@app.post(f"{API}/auth/forgot-password", tags=["Auth"])
async def forgot_password(payload: ForgotPasswordRequest, db: AsyncSession = Depends(get_db)):
    await auth.request_password_reset(db, payload.email)
    return {"message": "If that email is registered, a password reset link has been sent."}


@app.post(f"{API}/auth/reset-password/{{token}}", tags=["Auth"])
async def reset_password(token: str, payload: ResetPasswordRequest,
                         db: AsyncSession = Depends(get_db)):
    await auth.reset_password(db, token, payload.new_password, payload.confirm_password)
    return {"message": "Password has been reset successfully"}


# ═══════════════════════════════════════════════════════════════════════════════
# UPLOAD
# ═══════════════════════════════════════════════════════════════════════════════
@app.post(f"{API}/upload", tags=["Upload"])
async def upload_file(
    file: Optional[UploadFile] = File(None),
    chart_type: Optional[str] = Form(None, alias="chartType"),
    x_key: Optional[str] = Form(None, alias="xKey"),
    y_key: Optional[str] = Form(None, alias="yKey"),
    title: Optional[str] = Form(None),
    user: CurrentUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Parse an uploaded spreadsheet and auto-save a chart for it.
    Reads at most MAX_UPLOAD_MB + 1 byte so oversized files are rejected early.
    """
    filename = file.filename if file else None
    content = await file.read(settings.max_upload_bytes + 1) if file else None
    rows, chart, file_id = await ingestion.ingest_upload(
        db, user.id, filename, content,
        overrides={"chart_type": chart_type, "x_key": x_key, "y_key": y_key, "title": title},
    )
    return {
        "message": "File parsed and chart auto-saved",
        "data": rows,
        "chart": charts.serialize_chart(chart),
        "fileId": file_id,
    }


# ═══════════════════════════════════════════════════════════════════════════════
# CHARTS
# ═══════════════════════════════════════════════════════════════════════════════
@app.post(f"{API}/charts/save", tags=["Charts"], status_code=201)
async def save_chart(payload: ChartCreate, user: CurrentUser = Depends(get_current_user),
                     db: AsyncSession = Depends(get_db)):
    chart = await charts.create_chart(db, user.id, payload)
    return {"message": "Chart metadata saved", "meta": charts.serialize_chart(chart)}


@app.put(f"{API}/charts/{{chart_id}}", tags=["Charts"])
async def update_chart(chart_id: int, payload: ChartUpdate,
                       user: CurrentUser = Depends(get_current_user),
                       db: AsyncSession = Depends(get_db)):
    chart = await charts.update_chart(db, user.id, chart_id, payload)
    return {"message": "Chart updated", "chart": charts.serialize_chart(chart)}


@app.get(f"{API}/charts/history", tags=["Charts"])
async def chart_history(user: CurrentUser = Depends(get_current_user),
                        db: AsyncSession = Depends(get_db)):
    history = await charts.list_charts(db, user.id, pinned=False)
    return {"history": [charts.serialize_chart(c) for c in history]}


@app.get(f"{API}/charts/saved", tags=["Charts"])
async def saved_charts(user: CurrentUser = Depends(get_current_user),
                       db: AsyncSession = Depends(get_db)):
    saved = await charts.list_charts(db, user.id, pinned=True)
    return {"savedCharts": [charts.serialize_chart(c) for c in saved]}


@app.delete(f"{API}/charts/{{chart_id}}", tags=["Charts"])
async def delete_chart(chart_id: int, user: CurrentUser = Depends(get_current_user),
                       db: AsyncSession = Depends(get_db)):
    await charts.delete_chart(db, user.id, chart_id)
    return {"message": "Chart deleted successfully"}


# ═══════════════════════════════════════════════════════════════════════════════
# AI
# ═══════════════════════════════════════════════════════════════════════════════
@app.post(f"{API}/ai/summary", tags=["AI"])
async def ai_summary(payload: InsightRequest,
                     _: CurrentUser = Depends(get_current_user),
                     client: httpx.AsyncClient = Depends(insights.get_llm_client)):
    summary = await insights.generate_insight(
        client, payload.chart_type, payload.x_key, payload.y_key, payload.data,
    )
    return {"summary": summary}


# ═══════════════════════════════════════════════════════════════════════════════
# ADMIN
# ═══════════════════════════════════════════════════════════════════════════════
@app.get(f"{API}/admin/users", tags=["Admin"])
async def admin_list_users(_: CurrentUser = Depends(require_admin),
                           db: AsyncSession = Depends(get_db)):
    users = await admin.list_users(db)
    return [admin.serialize_user(u) for u in users]


@app.put(f"{API}/admin/user/{{user_id}}/role", tags=["Admin"])
async def admin_change_role(user_id: int, payload: RoleUpdate,
                            current: CurrentUser = Depends(require_admin),
                            db: AsyncSession = Depends(get_db)):
    await admin.change_role(db, current, user_id, payload.role)
    return {"message": "Role updated successfully"}


@app.put(f"{API}/admin/user/{{user_id}}/block", tags=["Admin"])
async def admin_toggle_block(user_id: int, current: CurrentUser = Depends(require_admin),
                             db: AsyncSession = Depends(get_db)):
    user = await admin.toggle_block(db, current, user_id)
    return {"message": f"User {'blocked' if user.is_blocked else 'unblocked'} successfully"}


@app.delete(f"{API}/admin/user/{{user_id}}", tags=["Admin"])
async def admin_delete_user(user_id: int, current: CurrentUser = Depends(require_admin),
                            db: AsyncSession = Depends(get_db)):
    await admin.delete_user(db, current, user_id)
    return {"message": "User deleted successfully"}


@app.get(f"{API}/admin/stats", tags=["Admin"])
async def admin_stats(_: CurrentUser = Depends(require_admin),
                      db: AsyncSession = Depends(get_db)):
    return await admin.platform_stats(db)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("excel_analytics.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
