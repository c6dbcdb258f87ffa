"""opradraft CLI: discovery, processing, and analysis commands."""

import asyncio
import logging
import sys

from opradraft.core.errors import OpraDraftError

USAGE = """\
Usage: opradraft <command> [args]

Commands:
  discover <municipality> [--county <county>]   Find and store the rent control ordinance
  process <ordinance_id>                        Chunk and index an ordinance
  analyze <ordinance_id>                        Determine relevant OPRA record categories
  init-db                                       Create the pgvector extension and tables\
"""


def _split_county(args: list[str]) -> tuple[str, str | None]:
    """``["Jersey", "City", "--county", "Hudson"]`` → ("Jersey City", "Hudson")."""
    county = None
    if "--county" in args:
        i = args.index("--county")
        county = " ".join(args[i + 1:]) or None
        args = args[:i]
    return " ".join(args), county


def _run_discover(args: list[str]) -> None:
    from opradraft.pipeline.municipalities import discover_municipality
    from opradraft.pipeline.services import get_services

    name, county = _split_county(args)
    if not name:
        print("Usage: opradraft discover <municipality> [--county <county>]")
        sys.exit(1)

    print(f"Discovering rent control ordinance for {name}" + (f", {county} County" if county else ""))
    outcome = asyncio.run(discover_municipality(get_services(), name, county))
    result = outcome.result

    print()
    for line in result.reasoning:
        print(f"  {line}")
    print()
    if not result.success:
        print("No ordinance found.")
        sys.exit(2)
    print(f"Found: {result.title}")
    print(f"  URL:        {result.url}")
    print(f"  Strategy:   {result.strategy} ({result.confidence} confidence)")
    print(f"  Ordinance:  {outcome.ordinance_id}")
    if outcome.custodian:
        print(f"  Custodian:  {outcome.custodian.name} {outcome.custodian.email or outcome.custodian.phone or ''}")
    print(f"\nNext: opradraft process {outcome.ordinance_id}")


def _run_process(ordinance_id: str) -> None:
    from opradraft.pipeline.services import get_services

    result = asyncio.run(get_services().processor.process(ordinance_id))
    if result.already_processed:
        print(f"Ordinance {ordinance_id} already processed ({result.chunk_count} chunks)")
    else:
        print(f"Indexed {result.chunk_count} chunks for ordinance {ordinance_id}")


def _run_analyze(ordinance_id: str) -> None:
    from opradraft.core.categories import get_category
    from opradraft.pipeline.requests import analyze_ordinance
    from opradraft.pipeline.services import get_services

    analysis = asyncio.run(analyze_ordinance(get_services(), ordinance_id))
    print(f"\nAnalyzed {analysis.total_sections} sections; {len(analysis.relevant_categories)} relevant categories:\n")
    for category_id in analysis.relevant_categories:
        category = get_category(category_id)
        marker = " (supplemental)" if category_id in analysis.supplemental_categories else ""
        print(f"  {category_id:<25} {category.name if category else ''}{marker}")
    print()
    print(f"  Rent control board:     {'yes' if analysis.has_rent_control_board else 'no'}")
    print(f"  Complaint process:      {'yes' if analysis.has_complaint_process else 'no'}")
    print(f"  Enforcement mechanism:  {'yes' if analysis.has_enforcement_mechanism else 'no'}")
    for warning in analysis.warnings:
        print(f"  Warning: {warning}")


def main() -> None:
    """Entry point for the opradraft console script."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    args = sys.argv[1:]
    if not args or args[0] in ("-h", "--help"):
        print(USAGE)
        sys.exit(0 if args else 1)

    command, rest = args[0], args[1:]
    try:
        if command == "discover":
            _run_discover(rest)
        elif command in ("process", "analyze") and len(rest) == 1:
            (_run_process if command == "process" else _run_analyze)(rest[0])
        elif command == "init-db":
            from opradraft.storage.db import init_db

            asyncio.run(init_db())
            print("Database initialized")
        else:
            print(USAGE)
            sys.exit(1)
    except OpraDraftError as e:
        print(f"Error ({e.error_type}): {e}")
        sys.exit(1)
