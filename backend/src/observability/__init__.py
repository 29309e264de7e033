"""Observability module for the matching engine.

Provides structured logging with event correlation and Prometheus metrics.
"""

from .logging_config import configure_logging, JSONFormatter, EventIDFilter
from .correlation import event_id_var, get_event_id, generate_event_id, event_context
from .metrics import (
    events_processed_total,
    event_duration_seconds,
    matches_found_total,
    match_score_histogram,
    candidate_cap_hits_total,
    chains_discovered_total,
    chain_search_truncated_total,
    chain_transitions_total,
    notifications_total,
)

__all__ = [
    # Logging
    "configure_logging",
    "JSONFormatter",
    "EventIDFilter",
    # Correlation
    "event_id_var",
    "get_event_id",
    "generate_event_id",
    "event_context",
    # Metrics
    "events_processed_total",
    "event_duration_seconds",
    "matches_found_total",
    "match_score_histogram",
    "candidate_cap_hits_total",
    "chains_discovered_total",
    "chain_search_truncated_total",
    "chain_transitions_total",
    "notifications_total",
]
