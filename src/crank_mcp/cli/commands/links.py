"""Wikilink insertion commands."""

import json
from pathlib import Path
from typing import List, Optional, Tuple

import click

from crank_mcp.cli.commands.zones import read_document
from crank_mcp.cli.logging import cli_command, get_cli_logger
from crank_mcp.cli.output import emit_error, emit_success
from crank_mcp.cli.registry import get_context
from crank_mcp.core.wikilinks import Entity, EntityWithAliases, apply_wikilinks

logger = get_cli_logger()


def _load_entities_file(path: str) -> List[Entity]:
    """Load ``["Name", {"name": ..., "path": ..., "aliases": [...]}, ...]``."""
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        emit_error(f"Entities file not found: {path}", code="NOT_FOUND", error_type="not_found")
    except json.JSONDecodeError as exc:
        emit_error(
            f"Entities file is not valid JSON: {path}",
            code="INVALID_FORMAT",
            error_type="validation",
            details={"reason": str(exc)},
        )

    if not isinstance(raw, list):
        emit_error(
            "Entities file must contain a JSON list",
            code="INVALID_FORMAT",
            error_type="validation",
        )

    entities: List[Entity] = []
    for item in raw:
        if isinstance(item, str):
            entities.append(item)
        elif isinstance(item, dict) and item.get("name"):
            entities.append(
                EntityWithAliases(
                    name=str(item["name"]),
                    path=str(item.get("path", "")),
                    aliases=[str(a) for a in item.get("aliases") or []],
                )
            )
        else:
            logger.warning(f"Skipping malformed entity entry: {item!r}")
    return entities


@click.group("links")
def links() -> None:
    """Wikilink insertion that respects protected zones."""
    pass


@links.command("apply")
@click.argument("file", type=click.Path(dir_okay=False))
@click.option("--entity", "entity_names", multiple=True, help="Entity name (repeatable).")
@click.option(
    "--entities-file",
    type=click.Path(dir_okay=False),
    help="JSON list of names or {name, path, aliases} objects.",
)
@click.option(
    "--all-occurrences",
    is_flag=True,
    help="Link every eligible mention instead of only the first.",
)
@click.option("--case-sensitive", is_flag=True, help="Match case exactly.")
@click.option("--write", is_flag=True, help="Rewrite FILE in place.")
@click.pass_context
@cli_command("links-apply")
def links_apply_cmd(
    ctx: click.Context,
    file: str,
    entity_names: Tuple[str, ...],
    entities_file: Optional[str],
    all_occurrences: bool,
    case_sensitive: bool,
    write: bool,
) -> None:
    """Insert wikilinks for known entities into FILE."""
    linking = get_context(ctx).config.linking

    entities: List[Entity] = list(entity_names)
    if entities_file:
        entities.extend(_load_entities_file(entities_file))
    if not entities:
        emit_error(
            "No entities given",
            code="VALIDATION_ERROR",
            error_type="validation",
            remediation="Pass --entity NAME or --entities-file PATH",
        )

    content = read_document(file)
    result = apply_wikilinks(
        content,
        entities,
        first_occurrence_only=False if all_occurrences else linking.first_occurrence_only,
        case_insensitive=False if case_sensitive else linking.case_insensitive,
    )

    written = False
    if write and result.links_added:
        Path(file).write_text(result.content, encoding="utf-8")
        written = True

    payload = {
        "file": file,
        "links_added": result.links_added,
        "linked_entities": result.linked_entities,
        "written": written,
    }
    if not write:
        payload["content"] = result.content
    emit_success(payload)
