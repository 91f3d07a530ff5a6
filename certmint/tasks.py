# certmint/tasks.py
import logging
from apscheduler.schedulers.background import BackgroundScheduler
from certmint.errors import CertmintError
from certmint.services import get_orchestrator
from certmint.settings import settings

log = logging.getLogger("tasks")


def resume_pending_reserve_updates(orchestrator=None) -> int:
    """Retry the reserve update of every asset left half-minted. Returns how many completed."""
    orchestrator = orchestrator or get_orchestrator()
    pending = orchestrator.store.list_pending()
    if pending:
        log.info("Resuming %d pending reserve updates", len(pending))
    resumed = 0
    for checkpoint in pending:
        try:
            tx_id, _ = orchestrator.resume_reserve_update(checkpoint.asset_id)
        except CertmintError as e:
            # stays pending; next run tries again
            log.warning("Resume of asset %s failed: %s", checkpoint.asset_id, e)
            continue
        except Exception:
            log.exception("Unexpected error resuming asset %s", checkpoint.asset_id)
            continue
        log.info("Asset %s reserve at %s (tx %s)", checkpoint.asset_id, checkpoint.target_reserve, tx_id)
        resumed += 1
    return resumed


scheduler = BackgroundScheduler()
scheduler.add_job(resume_pending_reserve_updates, "interval", minutes=settings.RESUME_INTERVAL_MINUTES)
