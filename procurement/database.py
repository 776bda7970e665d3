# procurement/database.py
"""
Configuration SQLAlchemy et gestion des sessions PostgreSQL
"""

import time
import logging
from contextlib import contextmanager
from sqlalchemy import create_engine, text
from sqlalchemy.orm import declarative_base, sessionmaker
from procurement.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def build_engine(db_url: str, echo: bool = False):
    """
    Crée le moteur SQLAlchemy.
    SQLite (tests, dev local) n'accepte ni pool_size ni connect_timeout.
    """
    if db_url.startswith("sqlite"):
        return create_engine(
            db_url,
            connect_args={"check_same_thread": False, "timeout": 30},
            echo=echo,
        )

    return create_engine(
        db_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,       # Vérifie la connexion avant utilisation
        pool_recycle=1800,         # Recycle les connexions après 30min
        connect_args={
            "connect_timeout": 10,
        },
        echo=echo,
    )


def build_session_factory(bind):
    """Factory de sessions liée à un moteur donné"""
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=bind,
    )


engine = build_engine(settings.database_url, echo=settings.DEBUG)

SessionLocal = build_session_factory(engine)

# Base déclarative pour tous les modèles
Base = declarative_base()


def get_db():
    """
    Dépendance FastAPI : fournit une session DB par requête.
    La session est automatiquement fermée après la requête.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@contextmanager
def get_db_context(session_factory=None):
    """
    Context manager pour utilisation hors FastAPI (poller, workers, scripts).
    Usage:
        with get_db_context() as db:
            db.query(...)
    """
    db = (session_factory or SessionLocal)()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def init_db(bind=None):
    """
    Crée toutes les tables en base avec retry.
    À appeler au démarrage de l'application.
    """
    # Import tous les modèles pour que SQLAlchemy les enregistre
    from procurement.models import rfp, vendor, proposal  # noqa: F401

    bind = bind or engine
    max_retries = 5
    retry_delay = 3  # secondes

    for attempt in range(1, max_retries + 1):
        try:
            logger.info(f"🔌 Tentative de connexion DB ({attempt}/{max_retries})...")
            with bind.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("✅ Connexion DB réussie")

            Base.metadata.create_all(bind=bind)
            logger.info("✅ Tables créées/vérifiées avec succès")
            return
        except Exception as e:
            logger.error(f"❌ Tentative {attempt}/{max_retries} échouée: {e}")
            if attempt < max_retries:
                logger.info(f"⏳ Retry dans {retry_delay}s...")
                time.sleep(retry_delay)
                retry_delay *= 2  # Backoff exponentiel
            else:
                logger.critical(f"💀 Impossible de se connecter à la DB après {max_retries} tentatives")
                raise
