# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""RumorMill - Credibility-weighted truth scoring for anonymous claims.

Anonymous participants vote on short claims ("rumors"). Each vote is weighted
by the voter's credibility, and credibility is only adjusted once a claim
locks, so no single party can dictate an outcome.

Architecture:
  Identity tokens (one-way, per-claim vote hashes)
    → Abuse guard (rate limits, low-credibility dampening, anomaly flags)
    → Truth-score aggregation (weighted running sums, lock thresholds)
    → Credibility ledger (deferred, idempotent per-vote settlement)
    → Reference graph (acyclic citations between claims)

CLI entry point: ``rumormill``
"""

__version__ = "0.1.0"

from . import (
    core as core,
)
