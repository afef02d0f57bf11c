"""
ARES Relevance API Server
Personalized supplement relevance scoring
Version 1.0.0
"""

import logging
import os
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.catalog.admin import router as catalog_router
from app.relevance.admin import router as relevance_router

API_VERSION = "1.0.0"

# ============================================
# Logging
# ============================================
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("api_server")

# ============================================
# App Configuration
# ============================================
app = FastAPI(
    title="ARES Relevance API",
    description="Personalized supplement relevance scoring",
    version=API_VERSION,
)

# ============================================
# CORS Configuration
# ============================================
allowed_origins = [
    o.strip() for o in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if o.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# ============================================
# Routers
# ============================================
app.include_router(relevance_router)
app.include_router(catalog_router)
logger.info("Relevance and catalog routers registered")


# ============================================
# Health & Version Endpoints
# ============================================
@app.get("/health")
def health():
    return {"status": "healthy", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.get("/version")
def version():
    return {
        "api_version": API_VERSION,
        "modules": {
            "relevance": "relevance_scoring_v1",
            "catalog": "catalog_matrix_v1",
        },
    }
