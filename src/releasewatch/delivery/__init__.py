"""
Release delivery.

Renders releases into Discord messages, tracks what was posted, and
reconciles the release list against the channel on every poll.
"""

from __future__ import annotations

from releasewatch.delivery.formatter import ReleaseFormatter, ReleaseRenderer, RenderResult
from releasewatch.delivery.ledger import DeliveryAction, DeliveryLedger
from releasewatch.delivery.reconciler import CycleReport, ReleaseReconciler, oldest_first

__all__ = [
    "CycleReport",
    "DeliveryAction",
    "DeliveryLedger",
    "ReleaseFormatter",
    "ReleaseReconciler",
    "ReleaseRenderer",
    "RenderResult",
    "oldest_first",
]
