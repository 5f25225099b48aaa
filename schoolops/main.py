import logging
from fastapi import FastAPI, Depends, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from supabase import Client

from schoolops.core import clock
from schoolops.core.config import settings
from schoolops.db.supabase import get_supabase
from schoolops.modules.liff.router import router as liff_router
from schoolops.modules.makeup.router import router as makeup_router
from schoolops.modules.attendance.router import router as attendance_router
from schoolops.modules.cron.router import router as cron_router

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="SchoolOps Backend",
    description="Makeup classes, attendance and class lifecycle for a multi-branch school",
    version="1.0.0"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    # Malformed input is a plain 400 with the same envelope as business errors
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": {"success": False, "message": "Invalid request", "errors": jsonable_encoder(exc.errors())}},
    )


# Root route (test)
@app.get("/")
def root():
    return {"message": "SchoolOps backend is running"}


# Health check route
@app.get("/health")
def health_check(db: Client = Depends(get_supabase)):
    """Check if the service and database connection are healthy"""
    try:
        db.table("classes").select("id").limit(1).execute()
        return {
            "status": "healthy",
            "database": "connected",
            "timestamp": clock.now().isoformat()
        }
    except Exception as e:
        logger.error("Health check failed: %s", e)
        return {
            "status": "unhealthy",
            "database": f"error: {str(e)}",
            "timestamp": clock.now().isoformat()
        }


# Include routers
app.include_router(liff_router, prefix="/api/liff", tags=["LIFF"])
app.include_router(makeup_router, prefix="/api/admin/makeup", tags=["Makeup"])
app.include_router(attendance_router, prefix="/api/admin/attendance", tags=["Attendance"])
app.include_router(cron_router, prefix="/api/cron", tags=["Cron"])
