# procurement/main.py
"""
Vendor Procurement Engine - Point d'entrée FastAPI.
Ingestion des réponses fournisseurs et recommandation par RFP.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from procurement.config import get_settings
from procurement.database import engine, init_db
from procurement.routers import proposals
from procurement.scheduler import jobs
from procurement.services.analysis_queue import get_analysis_queue

settings = get_settings()

# Configuration du logging
os.makedirs("logs", exist_ok=True)
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler("logs/procurement.log", mode="a", encoding="utf-8"),
    ],
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("openai").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


# === Lifespan : startup + shutdown ===
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Gestion du cycle de vie de l'application"""
    # --- STARTUP ---
    logger.info("🚀 Démarrage de Vendor Procurement Engine")
    logger.info(f"   Version: {settings.APP_VERSION}")

    init_db()
    logger.info("✅ Base de données initialisée")

    analysis_queue = get_analysis_queue()
    analysis_queue.start()

    jobs.init_scheduler(analysis_queue=analysis_queue)
    logger.info("🟢 Application prête")

    yield

    # --- SHUTDOWN ---
    logger.info("🔴 Arrêt de l'application...")
    jobs.shutdown_scheduler()
    await run_in_threadpool(analysis_queue.stop)
    logger.info("👋 Application arrêtée proprement")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
## 📋 Vendor Procurement Engine

- **Relève IMAP** des réponses fournisseurs et rapprochement avec les RFP
- **Analyse IA** des propositions (prix, délais, conditions, score 0-100)
- **Recommandation** : une seule proposition recommandée par RFP
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# === Gestion globale des erreurs ===
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handler global pour les erreurs non gérées"""
    logger.error(f"❌ Erreur non gérée: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "detail": "Erreur interne du serveur",
            "error": str(exc) if settings.DEBUG else "Contactez l'administrateur",
        },
    )


app.include_router(proposals.router, prefix="/api/v1")


@app.get("/health", tags=["Health"])
def health_check():
    """Health check pour Docker et monitoring"""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {str(e)}"

    return {
        "status": "healthy",
        "database": db_status,
        "version": settings.APP_VERSION,
    }


@app.get("/poller/status", tags=["Scheduler"])
def poller_status():
    """Statut de la relève IMAP et de la file d'analyse"""
    analysis_queue = get_analysis_queue()
    return {
        "poller": jobs.poller.status() if jobs.poller else {"running": False},
        "analysis_queue": {
            "running": analysis_queue.running,
            "pending": analysis_queue.pending,
        },
    }
