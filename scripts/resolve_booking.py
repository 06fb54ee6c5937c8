#!/usr/bin/env python3
"""
Resolve booking records into canonical financial fields from the command line.

Rules come either from a JSON file (preview, no database) or from the
database for one owner.  Output is JSON.

Usage:
    python3 scripts/resolve_booking.py --record <file> --platform <name> [options]
    python3 scripts/resolve_booking.py --validate "<formula>"
    python3 scripts/resolve_booking.py --upgrade-legacy "<legacy path>"

Examples:
    # Adapter fallbacks only
    python3 scripts/resolve_booking.py --record reservation.json --platform hostaway

    # Preview rules from a file, with per-field provenance
    python3 scripts/resolve_booking.py --record reservation.json --platform airbnb \\
        --rules rules.json --trace

    # Stored rules of one owner
    python3 scripts/resolve_booking.py --record bookings.json --platform booking \\
        --owner-id 6f1c... --db-url postgresql://...

    # Check a formula before saving it
    python3 scripts/resolve_booking.py --validate "[totalPayout] * 0.15"

A rules file is a JSON list of objects with ``platform``, ``target_field``,
``formula`` and optional ``priority``; later entries count as more recently
created.  A record file holds one JSON object or a list of them.
"""

from __future__ import annotations

import argparse
import json
import sys
from decimal import Decimal
from pathlib import Path
from typing import Any
from uuid import UUID, uuid4

# Project root on sys.path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Resolve booking records into canonical financial fields.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument("--record", type=Path, help="JSON file with one record or a list of records.")
    mode.add_argument("--validate", metavar="FORMULA", help="Validate a formula and exit.")
    mode.add_argument(
        "--upgrade-legacy",
        metavar="PATH",
        help="Rewrite a legacy field path (e.g. financeField.find(...).total) as a formula.",
    )
    parser.add_argument("--platform", help="Source platform of the record(s).")
    parser.add_argument("--rules", type=Path, default=None, help="JSON rules file (preview mode).")
    parser.add_argument("--owner-id", type=UUID, default=None, help="Use this owner's stored rules.")
    parser.add_argument("--template-id", type=UUID, default=None, help="Scope to one template.")
    parser.add_argument("--db-url", default=None, help="Database URL (default: HOSTMETRICS_DATABASE_URL).")
    parser.add_argument("--adapter-config", type=Path, default=None, help="Adapter YAML override.")
    parser.add_argument("--trace", action="store_true", help="Include per-field provenance.")
    parser.add_argument("--all-fields", action="store_true", help="Include absent fields as null.")
    return parser.parse_args(argv)


def _json_default(value: Any) -> Any:
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    raise TypeError(f"not JSON serializable: {type(value).__name__}")


def _load_records(path: Path) -> list[dict[str, Any]]:
    with open(path) as f:
        data = json.load(f)
    if isinstance(data, dict):
        return [data]
    if isinstance(data, list) and all(isinstance(r, dict) for r in data):
        return data
    raise ValueError(f"{path}: expected a JSON object or a list of objects")


def _load_rules(path: Path):
    from hostmetrics_kernel.domain.dtos import RuleSnapshot

    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON list of rules")
    return tuple(
        RuleSnapshot(
            rule_id=uuid4(),
            platform=entry["platform"],
            target_field=entry["target_field"],
            formula=entry["formula"],
            priority=entry.get("priority"),
            is_active=entry.get("is_active", True),
            creation_seq=index + 1,
        )
        for index, entry in enumerate(data)
    )


def _render(trace, show_trace: bool, all_fields: bool) -> dict[str, Any]:
    out: dict[str, Any] = {
        "platform": trace.platform,
        "fields": trace.financials.as_dict(include_absent=all_fields),
    }
    if show_trace:
        out["trace"] = [
            {
                "field": r.field,
                "value": r.value,
                "source": r.source.value,
                "rule_id": r.rule_id,
                "raw_field": r.raw_field,
            }
            for r in trace.fields
            if all_fields or r.value is not None or r.rule_id is not None
        ]
    return out


def _validate(formula: str) -> int:
    from hostmetrics_engines.formula import validate_formula

    issues = validate_formula(formula)
    for issue in issues:
        print(f"{issue.severity.upper()}: {issue.message} (position {issue.position})")
    if any(i.severity == "error" for i in issues):
        return 1
    print("OK")
    return 0


def _upgrade(path: str) -> int:
    from hostmetrics_engines.formula import upgrade_legacy_formula
    from hostmetrics_kernel.exceptions import FormulaSyntaxError

    try:
        print(upgrade_legacy_formula(path))
    except FormulaSyntaxError as e:
        print(f"ERROR: {e.reason}", file=sys.stderr)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    if args.validate is not None:
        return _validate(args.validate)
    if args.upgrade_legacy is not None:
        return _upgrade(args.upgrade_legacy)

    if not args.platform:
        print("ERROR: --platform is required with --record", file=sys.stderr)
        return 2
    if args.rules is not None and args.owner_id is not None:
        print("ERROR: use either --rules or --owner-id, not both", file=sys.stderr)
        return 2

    # Lazy imports so we fail fast on args first
    from dataclasses import replace

    from hostmetrics_config import get_engine_config, load_settings
    from hostmetrics_engines.resolution import ResolutionEngine
    from hostmetrics_kernel.exceptions import HostMetricsError
    from hostmetrics_kernel.logging_config import configure_logging

    settings = load_settings()
    if args.db_url:
        settings = replace(settings, database_url=args.db_url)
    configure_logging(level=settings.log_level)

    try:
        config = get_engine_config(settings, args.adapter_config)
        records = _load_records(args.record)
    except (HostMetricsError, OSError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    engine = ResolutionEngine(config.adapters, config.catalog)

    try:
        if args.owner_id is not None:
            results = _resolve_stored(engine, config, records, args)
        else:
            rules = _load_rules(args.rules) if args.rules is not None else ()
            results = [engine.resolve_with_trace(r, args.platform, rules) for r in records]
    except (HostMetricsError, OSError, KeyError, ValueError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    rendered = [_render(t, args.trace, args.all_fields) for t in results]
    payload = rendered[0] if len(rendered) == 1 else rendered
    json.dump(payload, sys.stdout, indent=2, default=_json_default)
    print()
    return 0


def _resolve_stored(engine, config, records, args):
    from hostmetrics_kernel.db.engine import init_engine_from_url, session_scope
    from hostmetrics_services.resolution_service import ResolutionService

    init_engine_from_url(config.settings.database_url)
    with session_scope() as session:
        service = ResolutionService(session, engine, config.settings.resolution_workers)
        return [
            service.resolve_with_trace(r, args.platform, args.owner_id, args.template_id)
            for r in records
        ]


if __name__ == "__main__":
    sys.exit(main())
