"""Graffiti wall: event sync and reconciled reads."""

from soulscape.canvas.sync import EventSyncer, SyncResult
from soulscape.canvas.wall import CanvasReconciler, merge_strokes, reduce_latest

__all__ = ["CanvasReconciler", "EventSyncer", "SyncResult", "merge_strokes", "reduce_latest"]
