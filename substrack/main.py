from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
from dotenv import load_dotenv

from substrack.routers import webhooks, checkout, access, invoices, merchants, plans, dashboard
from substrack.core.config import settings

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(levelname)s - %(message)s',
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)


def check_configuration() -> list:
    """Settings that leave part of the pipeline disabled or insecure"""
    problems = []
    if not settings.database_url:
        problems.append("DATABASE_URL is not set, every endpoint except /health will fail")
    if settings.access_token_secret == "your-secret-key-change-this":
        problems.append("ACCESS_TOKEN_SECRET uses the default value, subscriber tokens can be forged")
    if not settings.resend_api_key:
        problems.append("RESEND_API_KEY is not set, customer emails will be skipped")
    if not settings.supabase_jwt_secret and not settings.supabase_url:
        problems.append("Neither SUPABASE_JWT_SECRET nor SUPABASE_URL is set, merchant login is impossible")
    return problems


@asynccontextmanager
async def lifespan(app: FastAPI):
    for problem in check_configuration():
        logger.warning(f"⚠️ {problem}")
    logger.info(f"✅ Substrack API started ({settings.environment})")
    yield


app = FastAPI(
    title="Substrack API",
    description="Multi-tenant subscription billing backend for Stripe merchants",
    version="1.0.0",
    redirect_slashes=False,
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.environment == "development" else [settings.frontend_url],
    allow_credentials=False if settings.environment == "development" else True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Health check endpoint
@app.get("/health")
async def health_check():
    return JSONResponse(content={
        "status": "healthy",
        "service": "Substrack API",
        "version": "1.0.0",
        "database": "configured" if settings.database_url else "missing"
    })

# Include routers
app.include_router(webhooks.router, prefix="/api/webhooks", tags=["Webhooks"])
app.include_router(checkout.router, prefix="/api/checkout", tags=["Checkout"])
app.include_router(access.router, prefix="/api/access", tags=["Access Tokens"])
app.include_router(invoices.router, prefix="/api/invoices", tags=["Invoices"])
app.include_router(merchants.router, prefix="/api/merchants", tags=["Merchants"])
app.include_router(plans.router, prefix="/api/plans", tags=["Plans"])
app.include_router(dashboard.router, prefix="/api/dashboard", tags=["Dashboard"])

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
