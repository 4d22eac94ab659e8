"""
Routing functions for LangGraph conditional edges.

Each function inspects the current state dict and returns the name
of the next node to execute.
"""

from __future__ import annotations

from typing import Any


# ── After load_ontology ──────────────────────────────────

def route_after_load(state: dict[str, Any]) -> str:
    """
    No active segments → end with a no-data failure.
    Otherwise → compute economics.
    """
    segments = state.get("segments") or []
    if not any(_get(s, "is_active", True) for s in segments):
        return "end_no_data"
    return "compute_economics"


# ── After generate_options ───────────────────────────────

def route_after_options(state: dict[str, Any]) -> str:
    """
    Nothing to evaluate → skip straight to selection (which recommends nothing).
    Otherwise → council evaluation.
    """
    if not state.get("options"):
        return "select_recommendation"
    return "council_evaluation"


def _get(item: Any, key: str, default: Any = None) -> Any:
    if isinstance(item, dict):
        return item.get(key, default)
    return getattr(item, key, default)
