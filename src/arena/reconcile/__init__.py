"""Decision reconciliation against exchange trades and positions."""

from arena.reconcile.matcher import DecisionReconciler
from arena.reconcile.store import DecisionDatabase, DecisionStore, SqliteDecisionStore

__all__ = ["DecisionDatabase", "DecisionReconciler", "DecisionStore", "SqliteDecisionStore"]
