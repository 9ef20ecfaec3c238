# jobs package
from .nda_reconcile import reconcile_pending_ndas, run_nda_reconcile

__all__ = [
    'reconcile_pending_ndas',
    'run_nda_reconcile'
]
