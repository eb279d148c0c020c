# SPDX-License-Identifier: MIT
# Copyright (c) 2026 RumorMill Contributors

"""Claim and vote commands.

Provides:
  rumormill submit CONTENT
  rumormill vote CLAIM_ID {verify|dispute} (--fingerprint FP | --external-id ID)
  rumormill show CLAIM_ID
  rumormill delete CLAIM_ID
  rumormill refs CLAIM_ID
  rumormill list [--status S] [--sort recent|trending|controversial]
  rumormill stats
"""

from __future__ import annotations

import argparse

from ...core.exceptions import RumorMillException
from ...core.logging import correlation_context
from ...core.models import ClaimStatus
from ...core.reference_graph import format_reference
from ...storage.base import ClaimSort
from ..output import format_score, output_error, output_json, print_claim
from ..utils import add_identity_arguments, add_json_flag, get_service


def register(subparsers: argparse._SubParsersAction) -> None:
    """Register claim commands on the CLI parser."""
    submit_parser = subparsers.add_parser("submit", help="Submit a new claim")
    submit_parser.add_argument("content", help="Claim text; cite other claims as #R<claim-id>")
    add_json_flag(submit_parser)
    submit_parser.set_defaults(func=cmd_submit)

    vote_parser = subparsers.add_parser("vote", help="Vote on a claim")
    vote_parser.add_argument("claim_id", help="Claim to vote on")
    vote_parser.add_argument("value", choices=["verify", "dispute"], help="Vote direction")
    add_identity_arguments(vote_parser)
    add_json_flag(vote_parser)
    vote_parser.set_defaults(func=cmd_vote)

    show_parser = subparsers.add_parser("show", help="Show a claim and its references")
    show_parser.add_argument("claim_id")
    add_json_flag(show_parser)
    show_parser.set_defaults(func=cmd_show)

    delete_parser = subparsers.add_parser("delete", help="Delete a claim and prune its references")
    delete_parser.add_argument("claim_id")
    add_json_flag(delete_parser)
    delete_parser.set_defaults(func=cmd_delete)

    refs_parser = subparsers.add_parser("refs", help="Show claims citing and cited by a claim")
    refs_parser.add_argument("claim_id")
    add_json_flag(refs_parser)
    refs_parser.set_defaults(func=cmd_refs)

    list_parser = subparsers.add_parser("list", help="List claims")
    list_parser.add_argument(
        "--status",
        "-s",
        choices=["all"] + [s.value for s in ClaimStatus],
        default="all",
        help="Filter by status (default: all but deleted)",
    )
    list_parser.add_argument("--sort", choices=[s.value for s in ClaimSort], default=ClaimSort.RECENT.value)
    list_parser.add_argument("--limit", "-n", type=int, default=20, help="Max results (capped at 50)")
    list_parser.add_argument("--offset", type=int, default=0)
    add_json_flag(list_parser)
    list_parser.set_defaults(func=cmd_list)

    stats_parser = subparsers.add_parser("stats", help="Show claim counts per status")
    add_json_flag(stats_parser)
    stats_parser.set_defaults(func=cmd_stats)

    settle_parser = subparsers.add_parser("settle", help="Finish credibility updates of locked claims")
    settle_parser.add_argument("claim_id", nargs="?", help="Only this claim (default: every unsettled claim)")
    add_json_flag(settle_parser)
    settle_parser.set_defaults(func=cmd_settle)


def cmd_submit(args: argparse.Namespace) -> int:
    """Submit a new claim."""
    service = get_service()
    try:
        claim = service.create_claim(args.content)
        refs = service.get_references(claim.claim_id)
    except RumorMillException as e:
        return output_error(e, args.json)

    if args.json:
        output_json({"claim": claim.to_dict(), "references": refs.outgoing})
        return 0

    print(f"✅ Claim submitted: {claim.claim_id}")
    print(f"   Cite it as {format_reference(claim.claim_id)}")
    if refs.outgoing:
        print(f"   References {len(refs.outgoing)} claim(s)")
    return 0


def cmd_vote(args: argparse.Namespace) -> int:
    """Cast a vote on a claim."""
    service = get_service()
    with correlation_context():
        try:
            outcome = service.submit_vote(
                args.claim_id,
                raw_signal=args.fingerprint,
                value=args.value,
                external_id=args.external_id,
            )
        except RumorMillException as e:
            return output_error(e, args.json)

    if args.json:
        output_json(outcome.to_dict())
        return 0

    print(f"✅ Vote recorded: {args.value}")
    print(f"   Truth score: {format_score(outcome.truth_score)} from {outcome.vote_count} vote(s)")
    print(f"   Your weight: {outcome.effective_weight:.3f}")
    if outcome.locked:
        print(f"   🔒 Claim locked as {outcome.status.value}")
        if outcome.settlement is not None and not outcome.settlement.complete:
            print("   ⚠️  Some credibility updates are pending; run 'rumormill settle'")
    if outcome.suspicion is not None and outcome.suspicion.is_suspicious:
        print("   ⚠️  Your account has been flagged for unusual activity")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    """Show a claim."""
    service = get_service()
    try:
        claim = service.get_claim(args.claim_id)
        refs = service.get_references(args.claim_id)
    except RumorMillException as e:
        return output_error(e, args.json)

    if args.json:
        data = claim.to_dict()
        data["references"] = refs.to_dict()
        output_json(data)
        return 0

    print_claim(claim)
    if refs.outgoing:
        print(f"   Cites: {', '.join(refs.outgoing)}")
    if refs.incoming:
        print(f"   Cited by: {', '.join(refs.incoming)}")
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    """Delete a claim."""
    service = get_service()
    try:
        removal = service.delete_claim(args.claim_id)
    except RumorMillException as e:
        return output_error(e, args.json)

    if args.json:
        output_json(removal.to_dict())
        return 0

    print(f"✅ Deleted claim {args.claim_id} ({removal.edges_removed} reference(s) removed)")
    return 0


def cmd_refs(args: argparse.Namespace) -> int:
    """Show the reference graph around a claim."""
    service = get_service()
    try:
        refs = service.get_references(args.claim_id)
    except RumorMillException as e:
        return output_error(e, args.json)

    if args.json:
        output_json(refs.to_dict())
        return 0

    print(f"🔗 References for {args.claim_id}")
    print(f"   Cites ({len(refs.outgoing)}):")
    for claim_id in refs.outgoing:
        print(f"     → {claim_id}")
    print(f"   Cited by ({len(refs.incoming)}):")
    for claim_id in refs.incoming:
        print(f"     ← {claim_id}")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """List claims."""
    service = get_service()
    try:
        claims = service.list_claims(status=args.status, sort=args.sort, limit=args.limit, offset=args.offset)
    except RumorMillException as e:
        return output_error(e, args.json)

    if args.json:
        output_json([c.to_dict() for c in claims])
        return 0

    if not claims:
        print("📭 No claims found")
        return 0

    print(f"📰 {len(claims)} claim(s)\n")
    for claim in claims:
        print_claim(claim)
        print()
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Show claim counts."""
    service = get_service()
    try:
        stats = service.get_claim_stats()
    except RumorMillException as e:
        return output_error(e, args.json)

    if args.json:
        output_json(stats.to_dict())
        return 0

    print("📊 Claim Statistics")
    print("─" * 30)
    print(f"   Open:      {stats.open}")
    print(f"   Verified:  {stats.verified}")
    print(f"   Disputed:  {stats.disputed}")
    print(f"   Deleted:   {stats.deleted}")
    print(f"   Total:     {stats.total}")
    return 0


def cmd_settle(args: argparse.Namespace) -> int:
    """Re-run credibility finalization for locked claims."""
    service = get_service()
    try:
        reports = service.settle_claims(args.claim_id)
    except RumorMillException as e:
        return output_error(e, args.json)

    if args.json:
        output_json([r.to_dict() for r in reports])
        return 0

    if not reports:
        print("✅ Nothing to settle")
        return 0

    for report in reports:
        marker = "✓" if report.complete else "✗"
        print(f"  {marker} {report.claim_id} ({report.outcome.value})")
        print(f"    {report.processed} processed, {report.skipped} skipped, {len(report.failed)} failed")
    return 0 if all(r.complete for r in reports) else 1
