#=================================================================
# app/main_app.py
# FastAPI application entry-point (no static serving).
#=================================================================

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from app.routes import router as api_router, cancel_all_trackers
from app.db import close_db, init_db
from app.config import settings
from app.logging_filters import install_log_filters

# --- FastAPI instance ---
app = FastAPI(
    title="TPOS Variant Sync Middleware",
    description="Creates products and their variants on TPOS and mirrors them locally.",
)

# --- Logging setup (console, INFO level) ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s | %(message)s"
)
logger = logging.getLogger("uvicorn.error")
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
install_log_filters()

# --- CORS ---
origins = settings.CORS_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------- Include routers ----------------
app.include_router(api_router)           # /api/*

# --- Root endpoint ---
@app.get("/")
async def home():
    return {"status": "running", "service": "TPOS Variant Sync Middleware"}

# --- Global error handler (keeps full stack trace in logs) ---
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": f"Sync failed: {str(exc)}"},
    )

@app.on_event("startup")
async def _startup():
    # attribute catalog, products and batch status tables
    await init_db()
    logger.info("[APP] started; TPOS base %s", settings.TPOS_BASE_URL)

@app.on_event("shutdown")
async def _shutdown():
    # trackers only watch; the status rows survive for GET /api/batches/{key}
    cancel_all_trackers()
    await close_db()

#if __name__ == "__main__":
#    import uvicorn
#
#    uvicorn.run(app, host="0.0.0.0", port=8000)
