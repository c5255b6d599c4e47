"""
Command-line interface for fichas.

Validate and import sheet batches, roll checks, inspect derived stats,
and create or rename sheets against a JSON store.
"""

import argparse
import asyncio
import logging
import random
import sys
from pathlib import Path

from rich.prompt import Prompt

from ..errors import FichasError
from ..rules.derived import compute_adjusted_stats
from ..rules.identity import Decision, ImportMode
from ..rules.rolls import Grade, check_against_grade, roll_attribute, roll_entry
from ..state.schema import ATTRIBUTE_KEYS, EntryRef
from ..state.store import JsonStore
from ..systems.importer import ImportRejected, run_import, validate
from ..systems.sheets import (
    assign_sheet,
    create_sheet,
    delete_sheet,
    load_character,
    rename_sheet,
)
from ..tools.dice import roll_die

from .config import (
    CONFLICT_POLICIES,
    Config,
    get_config_path,
    load_config,
    set_conflict_policy,
    set_import_mode,
)
from .renderer import (
    console, THEME,
    render_check, render_config, render_error, render_report_errors,
    render_roll, render_stats, render_writes,
)

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Conflict decisions
# -----------------------------------------------------------------------------

def make_decider(policy: str):
    """Build the decide callback for identity conflicts from a config policy."""
    if policy == "overwrite":
        return lambda slug: Decision.OVERWRITE
    if policy == "suffix":
        return lambda slug: Decision.SUFFIX

    def ask(slug: str) -> Decision:
        choice = Prompt.ask(
            f"[{THEME['warning']}]'{slug}' already exists.[/{THEME['warning']}] "
            "Overwrite it or use a suffixed id?",
            choices=[d.value for d in Decision],
            default=Decision.SUFFIX.value,
        )
        return Decision(choice)
    return ask


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

def _open_store(args, config: Config) -> JsonStore:
    return JsonStore(args.store or config.get("store_path", "fichas.json"))


def _armed(args) -> list[EntryRef]:
    return [EntryRef.parse(text) for text in args.arm]


def cmd_validate(args, config: Config) -> int:
    report = validate(Path(args.file).read_text(encoding="utf-8"))
    if not report.ok:
        render_report_errors(report.errors)
        return 1
    console.print(
        f"[{THEME['success']}]OK[/{THEME['success']}] {report.count} sheet(s) ready to import"
    )
    return 0


def cmd_import(args, config: Config) -> int:
    store = _open_store(args, config)
    mode = ImportMode(args.mode or config.get("import_mode", "MERGE"))
    try:
        outcome = run_import(
            Path(args.file).read_text(encoding="utf-8"),
            mode,
            store,
            dry_run=args.dry_run,
        )
    except ImportRejected as e:
        render_report_errors(e.errors)
        return 1
    render_writes(outcome.writes, applied=outcome.applied)
    return 0


def cmd_roll(args, config: Config) -> int:
    store = _open_store(args, config)
    character = load_character(store, args.sheet)
    armed = _armed(args)
    rng = random.Random(args.seed) if args.seed is not None else None

    attribute = args.target.upper()
    if attribute in {k.value for k in ATTRIBUTE_KEYS}:
        result = roll_attribute(attribute, character, armed, rng=rng)
    else:
        ref = EntryRef.parse(args.target)
        entry = character.resolve(ref)
        if entry is None:
            raise ValueError(f"No entry {ref} on sheet {args.sheet!r}")
        result = roll_entry(entry, character, armed, rng=rng)

    render_roll(result, character)
    if args.grade:
        render_check(check_against_grade(result, args.grade, character.mental))
    return 0


def cmd_stats(args, config: Config) -> int:
    store = _open_store(args, config)
    character = load_character(store, args.sheet)
    render_stats(character, compute_adjusted_stats(character, _armed(args)))
    return 0


def cmd_create(args, config: Config) -> int:
    store = _open_store(args, config)
    decide = make_decider(config.get("conflict_policy", "ask"))
    sheet_id, writes = asyncio.run(create_sheet(store, args.name, decide))
    store.apply(writes)
    console.print(f"[{THEME['accent']}]Created[/{THEME['accent']}] sheets/{sheet_id}")
    return 0


def cmd_rename(args, config: Config) -> int:
    store = _open_store(args, config)
    decide = make_decider(config.get("conflict_policy", "ask"))
    result = asyncio.run(rename_sheet(store, args.sheet, args.new_name, decide))
    store.apply(result.writes)
    if result.moved:
        console.print(
            f"[{THEME['accent']}]Moved[/{THEME['accent']}] {result.old_id} -> {result.new_id} "
            f"[{THEME['dim']}]({len(result.references_updated)} assignment(s) updated)[/{THEME['dim']}]"
        )
    else:
        console.print(f"[{THEME['accent']}]Renamed[/{THEME['accent']}] {result.new_id}")
    return 0


def cmd_delete(args, config: Config) -> int:
    store = _open_store(args, config)
    writes = delete_sheet(store, args.sheet)
    store.apply(writes)
    render_writes(writes)
    return 0


def cmd_assign(args, config: Config) -> int:
    store = _open_store(args, config)
    store.apply(assign_sheet(store, args.player, args.sheet))
    console.print(f"[{THEME['accent']}]Assigned[/{THEME['accent']}] {args.player} -> {args.sheet}")
    return 0


def cmd_config(args, config: Config) -> int:
    if args.conflict_policy:
        set_conflict_policy(args.conflict_policy, args.config_dir)
    if args.import_mode:
        set_import_mode(args.import_mode, args.config_dir)

    render_config(get_config_path(args.config_dir), load_config(args.config_dir))
    return 0


def cmd_dice(args, config: Config) -> int:
    rng = random.Random(args.seed) if args.seed is not None else None
    console.print(f"d{args.sides}: [bold]{roll_die(args.sides, rng)}[/bold]")
    return 0


# -----------------------------------------------------------------------------
# Entry point
# -----------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fichas", description="fichas - character sheet rules engine")
    parser.add_argument("--store", help="Store file (overrides config)")
    parser.add_argument("--config-dir", default=".", help="Directory holding .fichas_config.json")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("validate", help="Check an import file without writing")
    p.add_argument("file")
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser("import", help="Import sheets from a JSON file")
    p.add_argument("file")
    p.add_argument("--mode", choices=[m.value for m in ImportMode])
    p.add_argument("--dry-run", action="store_true", help="Show the writes without applying them")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("roll", help="Roll an attribute (QI, FOR, DEX, VIG) or an entry (items/ID)")
    p.add_argument("sheet")
    p.add_argument("target")
    p.add_argument("--arm", action="append", default=[], metavar="COLLECTION/ID",
                   help="Arm a passive entry (repeatable)")
    p.add_argument("--grade", choices=[g.value for g in Grade], help="Check against a difficulty grade")
    p.add_argument("--seed", type=int)
    p.set_defaults(func=cmd_roll)

    p = sub.add_parser("stats", help="Show derived stats")
    p.add_argument("sheet")
    p.add_argument("--arm", action="append", default=[], metavar="COLLECTION/ID")
    p.set_defaults(func=cmd_stats)

    p = sub.add_parser("create", help="Create an empty sheet")
    p.add_argument("name")
    p.set_defaults(func=cmd_create)

    p = sub.add_parser("rename", help="Rename a sheet, moving its id if needed")
    p.add_argument("sheet")
    p.add_argument("new_name")
    p.set_defaults(func=cmd_rename)

    p = sub.add_parser("delete", help="Delete a sheet and its assignments")
    p.add_argument("sheet")
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("assign", help="Assign a sheet to a player")
    p.add_argument("player")
    p.add_argument("sheet")
    p.set_defaults(func=cmd_assign)

    p = sub.add_parser("config", help="Show or change saved settings")
    p.add_argument("--conflict-policy", choices=CONFLICT_POLICIES)
    p.add_argument("--import-mode", choices=[m.value for m in ImportMode])
    p.set_defaults(func=cmd_config)

    p = sub.add_parser("dice", help="Roll a single die")
    p.add_argument("sides", type=int)
    p.add_argument("--seed", type=int)
    p.set_defaults(func=cmd_dice)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config_dir)
    level = "DEBUG" if args.verbose else str(config.get("log_level", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format='%(asctime)s [%(levelname)s] %(message)s',
    )
    if config.get("conflict_policy") not in CONFLICT_POLICIES:
        logger.warning("Unknown conflict_policy %r; asking instead", config.get("conflict_policy"))
        config["conflict_policy"] = "ask"

    try:
        return args.func(args, config)
    except (FichasError, ValueError, OSError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        render_error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
