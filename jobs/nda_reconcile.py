# jobs/nda_reconcile.py
"""
NDA Reconcile Job

Polls Sadiq for every NDA with live signing invitations and applies the
envelope status, so agreements settle even when a webhook delivery is lost.
Runs every 15 minutes via Railway Cron Job.

Usage:
    python jobs/nda_reconcile.py
"""

import os
import sys
import logging

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Maximum agreements checked per run
BATCH_SIZE = int(os.environ.get('NDA_RECONCILE_BATCH_SIZE', 100))


def reconcile_pending_ndas(limit=BATCH_SIZE):
    """
    Reconcile all agreements awaiting signatures.

    Individual failures are counted and logged; the run continues with the
    remaining agreements.

    Returns:
        Dict with checked, updated and failed counts
    """
    from services.nda_workflow import get_workflow

    logger.info("Starting NDA reconcile job")
    stats = get_workflow().poll_pending(limit=limit)
    logger.info(
        f"NDA reconcile job completed: "
        f"{stats['checked']} checked, "
        f"{stats['updated']} updated, "
        f"{stats['failed']} failed"
    )
    return stats


def run_nda_reconcile():
    """Entry point for scheduler/cron - creates app context and runs job."""
    from dotenv import load_dotenv
    from app import create_app

    load_dotenv()
    app = create_app()
    with app.app_context():
        return reconcile_pending_ndas()


if __name__ == '__main__':
    run_nda_reconcile()
