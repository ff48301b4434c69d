# api/main.py

import os
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.routes import dashboard, extrabat, messaging, reformulate
from services.database import check_backend_config

# Charge .env en local uniquement (en prod les secrets sont injectés)
load_dotenv()

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s [%(levelname)s] %(name)s : %(message)s",
)
logger = logging.getLogger("gestion_sav.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Gestion SAV — Démarrage")
    check_backend_config()
    yield
    logger.info("Gestion SAV — Arrêt")


app = FastAPI(
    title="Gestion SAV",
    version="1.0.0",
    description="Fonctions serveur du suivi SAV et maintenance",
    lifespan=lifespan,
)

# ─────────────────────────────────────────
# CORS
# ─────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "X-Client-Info", "Apikey"],
)

# ─────────────────────────────────────────
# ROUTES
# ─────────────────────────────────────────
app.include_router(extrabat.router, tags=["extrabat"])
app.include_router(messaging.router, tags=["messaging"])
app.include_router(reformulate.router, tags=["reformulation"])
app.include_router(dashboard.router, prefix="/dashboard", tags=["dashboard"])

# ─────────────────────────────────────────
# HEALTH
# ─────────────────────────────────────────
@app.get("/health")
def health() -> dict:
    return {"status": "ok", "service": "gestion-sav"}

# ─────────────────────────────────────────
# ERREURS GLOBALES
# ─────────────────────────────────────────
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Erreur non gérée — {request.method} {request.url}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": str(exc)},
    )
