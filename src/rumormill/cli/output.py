# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Output formatting for CLI commands."""

from __future__ import annotations

import json
import sys
from typing import Any

from ..core.exceptions import RumorMillException
from ..core.models import Claim


def output_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def output_error(error: RumorMillException, as_json: bool = False) -> int:
    """Report a failed command and return its exit code."""
    if as_json:
        print(json.dumps(error.to_dict(), indent=2, default=str))
    else:
        print(f"❌ {error.message}", file=sys.stderr)
        wait = error.details.get("wait_time_ms")
        if wait is not None:
            print(f"   Retry in {wait / 1000:.1f}s", file=sys.stderr)
        for reason in error.details.get("reasons", []):
            print(f"   - {reason}", file=sys.stderr)
    return 1


def format_score(score: float) -> str:
    return f"{score:.0%}"


def print_claim(claim: Claim) -> None:
    print(f"📰 {claim.claim_id}  [{claim.status.value}]")
    print(f"   {claim.content}")
    print(f"   Truth score: {format_score(claim.truth_score)} from {claim.vote_count} vote(s)")
    if claim.locked_at:
        print(f"   Locked at:   {claim.locked_at.strftime('%Y-%m-%d %H:%M:%S')}")
