import atexit

from apscheduler.schedulers.background import BackgroundScheduler
from flask import current_app

from models import db
from utils.logger import get_logger

logger = get_logger("cleanup")

JOB_ID = "identity_cleanup"


class CleanupScheduler:
    """
    Periodically sweeps expired OAuth states and stale OTP rows.

    A failing sweep is logged and forgotten; the next tick runs as usual.
    """

    def __init__(self, app, oauth_states, otp_ledger=None, interval_seconds=300):
        self.app = app
        self.oauth_states = oauth_states
        self.otp_ledger = otp_ledger
        self.interval_seconds = interval_seconds
        self._scheduler = None

    def run_once(self) -> dict:
        counts = {"oauth_states": 0, "otp_records": 0}
        sweeps = [("oauth_states", self.oauth_states)]
        if self.otp_ledger is not None:
            sweeps.append(("otp_records", self.otp_ledger))

        with self.app.app_context():
            try:
                # each sweep stands alone; one failing does not skip the other
                for key, component in sweeps:
                    try:
                        counts[key] = component.cleanup_expired()
                    except Exception:
                        db.session.rollback()
                        logger.exception("Cleanup sweep failed for %s", key)
            finally:
                db.session.remove()

        if counts["oauth_states"] or counts["otp_records"]:
            logger.info(
                "Cleanup sweep removed %s OAuth state(s), %s OTP record(s)",
                counts["oauth_states"], counts["otp_records"],
            )
        return counts

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def start(self):
        if self.running:
            return
        self._scheduler = BackgroundScheduler(daemon=True)
        self._scheduler.add_job(
            self.run_once,
            trigger="interval",
            seconds=self.interval_seconds,
            id=JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        atexit.register(self.shutdown)
        logger.info("Cleanup scheduler started (every %ss)", self.interval_seconds)

    def shutdown(self):
        if not self.running:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Cleanup scheduler stopped")


def get_cleanup_scheduler() -> CleanupScheduler:
    return current_app.extensions["cleanup_scheduler"]
