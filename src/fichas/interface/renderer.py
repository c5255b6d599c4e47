"""
Display and rendering helpers for the fichas CLI.

Handles theming, roll breakdowns, derived stats and import reports.
"""

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.box import ROUNDED

from ..rules.derived import DerivedStats
from ..rules.rolls import ContributionKind, GMCheckResult, RollResult
from ..state.schema import Character
from ..state.writes import WriteSet


# Shared console instance
console = Console()

# -----------------------------------------------------------------------------
# Theme
# -----------------------------------------------------------------------------

THEME = {
    "primary": "steel_blue",
    "secondary": "grey70",
    "warning": "dark_goldenrod",
    "danger": "dark_red",
    "success": "green3",
    "accent": "cyan",
    "dim": "dim",
    "text": "grey85",
}


def _fmt_number(value: float | int) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"{value:+}" if not isinstance(value, float) else f"{value:+g}"


def _fmt_contribution(kind: ContributionKind, value: float | int) -> str:
    if kind is ContributionKind.CRITICAL:
        return f"x{value:g}"
    if kind is ContributionKind.MULT:
        return f"x{_fmt_number(value)}"
    return _fmt_number(value)


def render_roll(result: RollResult, character: Character | None = None) -> None:
    """Show a roll breakdown: die, every non-zero contribution, then the total."""
    title = result.target or "Roll"
    if character and character.name:
        title = f"{character.name}: {title}"

    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("Line", style=THEME["secondary"])
    table.add_column("Value", justify="right", style=THEME["text"])

    die_style = THEME["accent"] if result.critical else THEME["text"]
    table.add_row("d12", f"[{die_style}]{result.die}[/{die_style}]")
    for line in result.contributions:
        table.add_row(line.label, _fmt_contribution(line.kind, line.value))

    console.print(Panel(
        table,
        title=f"[bold {THEME['primary']}]{title}[/bold {THEME['primary']}]",
        subtitle=f"[bold]Total {result.total}[/bold]",
        border_style=THEME["accent"] if result.critical else THEME["primary"],
        box=ROUNDED,
        padding=(0, 1),
    ))


def render_check(check: GMCheckResult) -> None:
    """Show the GM verdict for a graded check."""
    style = THEME["success"] if check.success else THEME["danger"]
    verdict = "SUCCESS" if check.success else "FAILURE"
    threshold = f"DT {check.difficulty}"
    if check.dt_bonus:
        threshold += f" ({_fmt_number(check.dt_bonus)} mental) = {check.threshold}"
    console.print(
        f"[bold {style}]{verdict}[/bold {style}] "
        f"[{THEME['dim']}]{check.grade.value}: {threshold}, margin {check.margin:+d}[/{THEME['dim']}]"
    )


def render_stats(character: Character, stats: DerivedStats) -> None:
    """Show attributes and derived stats of a sheet."""
    table = Table(
        title=f"[bold {THEME['primary']}]{character.name or 'Unnamed'}[/bold {THEME['primary']}]",
        show_header=False,
        box=None,
    )
    table.add_column("Key", style=THEME["dim"])
    table.add_column("Value", style=THEME["secondary"])

    attrs = character.attributes
    table.add_row("Attributes", f"QI {attrs.QI}  FOR {attrs.FOR}  DEX {attrs.DEX}  VIG {attrs.VIG}")
    table.add_row("Mental", f"{character.mental}")
    table.add_row("Intentions", f"{stats.intentions}")
    table.add_row("Movement", f"{stats.movement_per_action}")
    table.add_row("Defense", f"{stats.base_defense}")
    table.add_row("Inventory", f"{stats.inventory_capacity}")
    table.add_row(
        "Resistance",
        f"head {stats.head_resistance}  torso {stats.torso_resistance}  limb {stats.limb_resistance}",
    )
    table.add_row("Hit points", f"{stats.total_hit_points}")

    console.print(table)


def render_report_errors(errors: list[str]) -> None:
    """List validation errors, one per line."""
    console.print(
        f"[bold {THEME['danger']}]{len(errors)} error(s)[/bold {THEME['danger']}]"
    )
    for error in errors:
        console.print(f"  [{THEME['danger']}]-[/{THEME['danger']}] {error}")


def render_writes(writes: WriteSet, applied: bool = True) -> None:
    """Summarize a write-set, one path per line."""
    verb = "Wrote" if applied else "Would write"
    console.print(f"[{THEME['accent']}]{verb} {len(writes)} path(s)[/{THEME['accent']}]")
    for path, value in writes:
        if value is None:
            console.print(f"  [{THEME['warning']}]delete[/{THEME['warning']}] {path}")
        else:
            console.print(f"  [{THEME['dim']}]set[/{THEME['dim']}]    {path}")


def render_error(message: str) -> None:
    console.print(f"[{THEME['danger']}]Error:[/{THEME['danger']}] {message}")


def render_config(path, config: dict) -> None:
    """Show saved settings and where they live."""
    console.print(f"[{THEME['dim']}]{path}[/{THEME['dim']}]")
    table = Table(show_header=False, box=None)
    table.add_column("Key", style=THEME["dim"])
    table.add_column("Value", style=THEME["secondary"])
    for key, value in config.items():
        table.add_row(key, str(value))
    console.print(table)
