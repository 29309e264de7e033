"""Prometheus metrics for the matching engine.

Defines operational metrics for monitoring matching throughput, chain
outcomes and collaborator health.
"""

from prometheus_client import Counter, Histogram

# Event processing metrics
events_processed_total = Counter(
    "xchange_matching_events_processed_total",
    "Total inbound events processed",
    ["event_type", "outcome"]  # outcome: processed|ignored|not_found|rejected|error
)

event_duration_seconds = Histogram(
    "xchange_matching_event_duration_seconds",
    "Time spent processing one inbound event in seconds",
    ["event_type"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0]
)

# Matching metrics
matches_found_total = Counter(
    "xchange_matches_found_total",
    "Total match records created",
    ["match_type"]  # PERFECT_BARTER|SALE_TO_DEMAND|DEMAND_TO_SUPPLY|REVERSE_AUCTION
)

match_score_histogram = Histogram(
    "xchange_match_score",
    "Match score distribution",
    buckets=[0.0, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0]
)

candidate_cap_hits_total = Counter(
    "xchange_candidate_cap_hits_total",
    "Candidate queries truncated at the result cap",
    ["kind"]  # items|demands|barter_items
)

# Chain metrics
chains_discovered_total = Counter(
    "xchange_chains_discovered_total",
    "Total barter chains persisted",
    ["chain_type"]  # DIRECT_SWAP|THREE_WAY|FOUR_WAY
)

chain_search_truncated_total = Counter(
    "xchange_chain_search_truncated_total",
    "Chain searches that exhausted the expansion budget"
)

chain_transitions_total = Counter(
    "xchange_chain_transitions_total",
    "Barter chain status transitions",
    ["from_status", "to_status"]
)

# Notification metrics
notifications_total = Counter(
    "xchange_notifications_total",
    "Notifications handed to the notification collaborator",
    ["status"]  # sent|failed|deduplicated
)
