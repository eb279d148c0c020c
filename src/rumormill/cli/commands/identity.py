# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Identity command: credibility, vote budget and warnings for a voter."""

from __future__ import annotations

import argparse

from ...core.exceptions import RumorMillException
from ..output import output_error, output_json
from ..utils import add_identity_arguments, add_json_flag, get_service


def register(subparsers: argparse._SubParsersAction) -> None:
    identity_parser = subparsers.add_parser("identity", help="Show credibility and vote budget of a voter")
    add_identity_arguments(identity_parser)
    add_json_flag(identity_parser)
    identity_parser.set_defaults(func=cmd_identity)


def cmd_identity(args: argparse.Namespace) -> int:
    """Describe the identity behind a fingerprint or external id."""
    service = get_service()
    if args.external_id:
        token = service.tokens.token_for_external(args.external_id)
    else:
        token = service.tokens.token_for(args.fingerprint)

    try:
        profile = service.describe_identity(token)
    except RumorMillException as e:
        return output_error(e, args.json)

    if args.json:
        output_json(profile.to_dict())
        return 0

    stats = profile.stats
    print(f"👤 Identity {token[:8]}…{' (new)' if profile.is_new else ''}")
    print(f"   Credibility:   {stats.credibility:.2f}")
    print(f"   Votes:         {stats.correct_votes}/{stats.total_votes} correct ({stats.accuracy:.0%})")
    print(
        f"   Vote budget:   {profile.rate_limit.remaining_hourly} this hour, "
        f"{profile.rate_limit.remaining_daily} today"
    )
    if profile.suspicion.is_suspicious:
        print("   ⚠️  Your account has been flagged for unusual activity")
    return 0
