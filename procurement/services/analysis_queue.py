# procurement/services/analysis_queue.py
"""
File d'analyse en arrière-plan.

`create` dépose l'identifiant de la proposition et rend la main ; un pool
de threads consomme la file et appelle `ProposalService.analyze`.
File bornée : si elle est pleine, le job est refusé (la proposition reste
pending et pourra être ré-analysée).
"""

import logging
import queue
import threading

from procurement.config import get_settings
from procurement.database import get_db_context
from procurement.exceptions import AnalysisFailed, NotFound
from procurement.services.proposal_service import ProposalService

logger = logging.getLogger(__name__)
settings = get_settings()

_STOP = object()


class AnalysisQueue:
    """Pool de workers consommant les analyses de propositions"""

    def __init__(
        self,
        workers: int | None = None,
        maxsize: int | None = None,
        session_factory=None,
        analyzer_factory=None,
    ):
        self.workers = workers or settings.ANALYSIS_WORKERS
        self.maxsize = maxsize or settings.ANALYSIS_QUEUE_SIZE
        self.session_factory = session_factory
        self.analyzer_factory = analyzer_factory
        self._queue: queue.Queue = queue.Queue(maxsize=self.maxsize)
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self._analyzer = None

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._threads = [
                threading.Thread(
                    target=self._worker_loop,
                    name=f"analysis-worker-{i}",
                    daemon=True,
                )
                for i in range(self.workers)
            ]
            for thread in self._threads:
                thread.start()
        logger.info(f"🧵 File d'analyse demarree ({self.workers} workers, capacite {self.maxsize})")

    def stop(self, timeout: float | None = 30.0) -> None:
        """Arrête les workers ; les analyses en cours vont jusqu'au bout"""
        with self._lock:
            threads = list(self._threads)
            for _ in threads:
                self._queue.put(_STOP)
        for thread in threads:
            thread.join(timeout=timeout)
        with self._lock:
            self._threads = [t for t in self._threads if t.is_alive()]
        logger.info("🧵 File d'analyse arretee")

    def enqueue(self, proposal_id: str) -> bool:
        """Dépose un job sans jamais bloquer. Retourne False si la file est pleine."""
        try:
            self._queue.put_nowait(proposal_id)
        except queue.Full:
            logger.warning(f"⚠️ File d'analyse pleine, proposition {proposal_id} laissee en pending")
            return False
        logger.debug(f"Analyse planifiee pour {proposal_id}")
        return True

    def join(self) -> None:
        """Attend que tous les jobs déposés soient traités"""
        self._queue.join()

    def _get_analyzer(self):
        if self.analyzer_factory is None:
            return None
        if self._analyzer is None:
            self._analyzer = self.analyzer_factory()
        return self._analyzer

    def _worker_loop(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self.run_job(item)
            finally:
                self._queue.task_done()

    def run_job(self, proposal_id: str) -> None:
        """Exécute une analyse ; toute erreur est journalisée et contenue."""
        try:
            with get_db_context(self.session_factory) as db:
                service = ProposalService(db, analyzer=self._get_analyzer(), queue=self)
                service.analyze(proposal_id)
        except AnalysisFailed as e:
            logger.error(f"❌ Analyse echouee pour {proposal_id} (reste pending): {e}")
        except NotFound as e:
            logger.warning(f"Analyse abandonnee pour {proposal_id}: {e}")
        except Exception as e:
            logger.error(f"❌ Erreur inattendue pendant l'analyse de {proposal_id}: {e}", exc_info=True)


_analysis_queue: AnalysisQueue | None = None


def get_analysis_queue() -> AnalysisQueue:
    """File partagée par l'application (créée à la demande)"""
    global _analysis_queue
    if _analysis_queue is None:
        _analysis_queue = AnalysisQueue()
    return _analysis_queue
