# procurement/scheduler/jobs.py
"""
Scheduler APScheduler - Relève périodique de la boîte de réception.
Chaque cycle : connexion -> non-lus -> décodage -> rapprochement ->
création de proposition -> marquage lu -> déconnexion.
"""

import enum
import logging
import threading
from collections import Counter
from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED

from procurement.config import get_settings
from procurement.database import get_db_context
from procurement.exceptions import ConnectionFailed, NoRFPMatch, NoVendorMatch, ParseFailed
from procurement.services.mailbox import InboundEmail, MailboxClient, parse_message
from procurement.services.matcher import match_email
from procurement.services.proposal_service import ProposalService
from procurement.services.store import ProposalStore

logger = logging.getLogger(__name__)
settings = get_settings()

JOB_ID = "mailbox_poll"


class PollerState(str, enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    FETCHING = "fetching"
    PROCESSING = "processing"
    CLOSING = "closing"


class IngestionOutcome(str, enum.Enum):
    CREATED = "created"
    DUPLICATE = "duplicate"
    NO_VENDOR = "no_vendor"
    NO_RFP = "no_rfp"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        """Issues définitives : le message est marqué lu"""
        return self is not IngestionOutcome.FAILED


class MailboxPoller:
    """Relève de la boîte IMAP et ingestion des réponses fournisseurs"""

    def __init__(
        self,
        client_factory=MailboxClient,
        session_factory=None,
        analysis_queue=None,
        interval_ms: int | None = None,
        scheduler: BackgroundScheduler | None = None,
    ):
        self.client_factory = client_factory
        self.session_factory = session_factory
        self.analysis_queue = analysis_queue
        self.interval_ms = interval_ms or settings.IMAP_POLL_INTERVAL_MS
        self.scheduler = scheduler or BackgroundScheduler(
            job_defaults={
                "coalesce": True,       # Fusionner les exécutions manquées
                "max_instances": 1,     # Jamais deux cycles en parallèle
                "misfire_grace_time": 60,
            },
        )
        self.state = PollerState.IDLE
        self.last_cycle: dict | None = None
        self._stop_event = threading.Event()
        self._cycle_lock = threading.Lock()
        self._client = None

    # ------------------------------------------------------------------
    #  Démarrage / arrêt
    # ------------------------------------------------------------------

    def start(self) -> bool:
        if not settings.imap_configured:
            logger.warning("⚠️ Configuration IMAP incomplete : relève des emails non demarree")
            return False

        self._stop_event.clear()
        self.scheduler.add_listener(scheduler_event_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
        self.scheduler.add_job(
            func=self.run_cycle,
            trigger=IntervalTrigger(seconds=self.interval_ms / 1000),
            id=JOB_ID,
            name="Releve de la boite de reception",
            replace_existing=True,
            next_run_time=datetime.now(),  # Premier cycle immédiat
        )
        self.scheduler.start()
        logger.info(f"⏰ Releve IMAP demarree, toutes les {self.interval_ms}ms")
        return True

    def stop(self) -> None:
        """Empêche tout nouveau cycle et coupe la session en cours"""
        self._stop_event.set()
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        client = self._client
        if client is not None:
            logger.info("Arret demande en plein cycle : fermeture de la session IMAP")
            client.abort()
        logger.info("⏰ Releve IMAP arretee")

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    # ------------------------------------------------------------------
    #  Cycle
    # ------------------------------------------------------------------

    def run_cycle(self) -> dict:
        """
        Un cycle complet. Les messages d'un lot sont traités strictement
        en séquence. Retourne le décompte des issues du cycle.
        """
        counts: Counter = Counter()
        if self.stopping:
            return dict(counts)
        if not self._cycle_lock.acquire(blocking=False):
            logger.info("Cycle precedent encore en cours, tick ignore")
            return dict(counts)

        client = None
        try:
            self.state = PollerState.CONNECTING
            client = self._client = self.client_factory()
            try:
                client.connect()
                client.select_inbox()
            except ConnectionFailed as e:
                logger.error(f"❌ {e} - cycle ignore")
                counts["connection_failed"] += 1
                return dict(counts)

            self.state = PollerState.FETCHING
            messages = client.fetch_unseen()
            logger.info(f"📨 {len(messages)} email(s) non lu(s)")

            self.state = PollerState.PROCESSING
            for uid, raw in messages:
                if self.stopping:
                    logger.info("Arret demande : fin du lot interrompue")
                    break

                try:
                    inbound = parse_message(uid, raw)
                except ParseFailed as e:
                    # Laissé non lu : nouvel essai au prochain cycle
                    logger.error(f"❌ {e}")
                    counts["parse_failed"] += 1
                    continue

                outcome = self.process_email(inbound)
                counts[outcome.value] += 1
                if outcome.terminal:
                    self._mark_seen(client, uid)

        except Exception as e:
            logger.error(f"❌ ERREUR CYCLE IMAP: {e}", exc_info=True)
            counts["cycle_failed"] += 1
        finally:
            self.state = PollerState.CLOSING
            if client is not None:
                client.logout()
            self._client = None
            self.state = PollerState.IDLE
            self._cycle_lock.release()

        self.last_cycle = {"finished_at": datetime.utcnow().isoformat(), **counts}
        logger.info(f"🏁 Cycle IMAP termine: {dict(counts)}")
        return dict(counts)

    def process_email(self, inbound: InboundEmail) -> IngestionOutcome:
        """Rapprochement puis création de la proposition ; erreurs contenues au message."""
        logger.info(f"Traitement email de {inbound.sender} | sujet: {inbound.subject!r}")
        try:
            with get_db_context(self.session_factory) as db:
                store = ProposalStore(db)
                try:
                    match = match_email(store, inbound.sender, inbound.subject)
                except NoVendorMatch as e:
                    logger.info(f"{e}, email ignore")
                    return IngestionOutcome.NO_VENDOR
                except NoRFPMatch as e:
                    logger.info(f"{e}, email ignore")
                    return IngestionOutcome.NO_RFP

                service = ProposalService(db, queue=self.analysis_queue)
                proposal, created = service.create_or_get(
                    rfp_id=match.rfp.id,
                    vendor_id=match.vendor.id,
                    raw_content=inbound.body,
                    email_subject=inbound.subject,
                    received_at=inbound.received_at,
                )
                if not created:
                    logger.info(
                        f"Proposition deja recue de {match.vendor.name} pour '{match.rfp.title}', email ignore"
                    )
                    return IngestionOutcome.DUPLICATE

                logger.info(
                    f"✅ Proposition {proposal.id} creee depuis email: vendor={match.vendor.name}, "
                    f"rfp='{match.rfp.title}' ({match.strategy})"
                )
                return IngestionOutcome.CREATED
        except Exception as e:
            logger.error(f"❌ Erreur traitement email {inbound.uid}: {e}", exc_info=True)
            return IngestionOutcome.FAILED

    def _mark_seen(self, client, uid: str) -> None:
        try:
            client.mark_seen(uid)
        except Exception as e:
            logger.error(f"❌ Impossible de marquer lu le message {uid}: {e}")

    def status(self) -> dict:
        job = self.scheduler.get_job(JOB_ID) if self.scheduler.running else None
        return {
            "running": self.scheduler.running,
            "state": self.state.value,
            "next_run": str(job.next_run_time) if job and job.next_run_time else None,
            "last_cycle": self.last_cycle,
        }


def scheduler_event_listener(event):
    """Listener pour les événements du scheduler"""
    if event.exception:
        logger.error(f"❌ Job {event.job_id} a échoué: {event.exception}")
    else:
        logger.debug(f"Job {event.job_id} exécuté")


poller: MailboxPoller | None = None


def init_scheduler(analysis_queue=None) -> MailboxPoller:
    """Crée et démarre la relève IMAP (ne démarre pas si IMAP n'est pas configuré)"""
    global poller
    poller = MailboxPoller(analysis_queue=analysis_queue)
    poller.start()
    return poller


def shutdown_scheduler():
    """Arrête proprement la relève"""
    if poller is not None:
        poller.stop()
