"""Prometheus collectors for the benefit service."""

from __future__ import annotations

from prometheus_client import Counter

TRANSFERS = Counter(
    "benefit_transfers_total",
    "Transfers by final outcome.",
    ["outcome"],
)

TRANSFER_CONFLICTS = Counter(
    "benefit_transfer_conflicts_total",
    "Version conflicts hit while committing transfers, including ones later retried.",
)
