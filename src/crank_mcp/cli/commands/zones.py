"""Protected zone commands.

Scan a markdown file for spans that automated rewriting must not touch,
and check candidate positions or ranges against them.
"""

from collections import Counter
from pathlib import Path
from typing import Optional, Tuple

import click

from crank_mcp.cli.logging import cli_command
from crank_mcp.cli.output import emit_error, emit_success
from crank_mcp.core.ranges import merge_ranges
from crank_mcp.core.zones import (
    ZoneType,
    find_frontmatter_end,
    get_protected_zones,
    is_in_protected_zone,
    range_overlaps_protected_zone,
)


def read_document(file: str) -> str:
    """Read a UTF-8 document or emit a structured error."""
    try:
        return Path(file).read_text(encoding="utf-8")
    except FileNotFoundError:
        emit_error(
            f"File not found: {file}",
            code="NOT_FOUND",
            error_type="not_found",
            remediation="Check the path and try again",
        )
    except UnicodeDecodeError as exc:
        emit_error(
            f"File is not valid UTF-8: {file}",
            code="INVALID_FORMAT",
            error_type="validation",
            details={"reason": str(exc)},
        )


@click.group("zones")
def zones() -> None:
    """Protected zone inspection."""
    pass


@zones.command("scan")
@click.argument("file", type=click.Path(dir_okay=False))
@click.option(
    "--type",
    "zone_types",
    multiple=True,
    type=click.Choice([t.value for t in ZoneType]),
    help="Only report zones of this type (repeatable).",
)
@cli_command("zones-scan")
def zones_scan_cmd(file: str, zone_types: Tuple[str, ...]) -> None:
    """List the protected zones of a document, sorted by start offset."""
    content = read_document(file)
    found = get_protected_zones(content, types=zone_types or None)
    merged = merge_ranges((z.start, z.end) for z in found)

    emit_success(
        {
            "file": file,
            "length": len(content),
            "count": len(found),
            "protected_chars": sum(end - start for start, end in merged),
            "counts_by_type": dict(Counter(z.type.value for z in found)),
            "zones": [z.to_dict() for z in found],
        }
    )


@zones.command("check")
@click.argument("file", type=click.Path(dir_okay=False))
@click.argument("start", type=int)
@click.argument("end", type=int, required=False)
@cli_command("zones-check")
def zones_check_cmd(file: str, start: int, end: Optional[int]) -> None:
    """Check a position (START) or a range (START END) against the zones.

    A range that only touches a zone boundary does not overlap it.
    """
    if start < 0 or (end is not None and end <= start):
        emit_error(
            "START must be >= 0 and END must be greater than START",
            code="VALIDATION_ERROR",
            error_type="validation",
            details={"start": start, "end": end},
        )

    content = read_document(file)
    found = get_protected_zones(content)

    if end is None:
        hits = [z.to_dict() for z in found if z.contains(start)]
        emit_success(
            {
                "file": file,
                "position": start,
                "protected": is_in_protected_zone(start, found),
                "zones": hits,
            }
        )
        return

    hits = [z.to_dict() for z in found if z.overlaps(start, end)]
    emit_success(
        {
            "file": file,
            "start": start,
            "end": end,
            "overlaps": range_overlaps_protected_zone(start, end, found),
            "zones": hits,
        }
    )


@zones.command("frontmatter")
@click.argument("file", type=click.Path(dir_okay=False))
@cli_command("zones-frontmatter")
def zones_frontmatter_cmd(file: str) -> None:
    """Report where the frontmatter block ends (0 when there is none)."""
    content = read_document(file)
    end = find_frontmatter_end(content)
    emit_success({"file": file, "has_frontmatter": end > 0, "frontmatter_end": end})
