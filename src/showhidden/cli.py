"""showhidden CLI for inspecting override rules and host wiring - Tyro implementation."""

import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Any

import attrs
import tyro
from rich import print
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from showhidden.config import CONFIG_FILENAME, ShowHiddenConfig
from showhidden.locator import ImportLocator
from showhidden.policy import CapabilityOverridePolicy
from showhidden.presentation import LOCKED_CLASS, stylesheet
from showhidden.visibility import Visibility, classify


# Subcommand definitions using attrs
@attrs.define
class Classify:
    """Classify a raw capability bitmask as visible or hidden."""

    bitmask: Annotated[str, tyro.conf.Positional]
    """Raw bitmask: decimal, 0x-prefixed hex or 0b-prefixed binary."""

    bit: Annotated[int | None, tyro.conf.arg(aliases=["-b"])] = None
    """Capability bit to test (default: configured capability_bit)."""

    json: bool = False
    """Output the verdict as JSON."""


@attrs.define
class Rules:
    """Show the override rule set for the configured mode."""

    json: bool = False
    """Output the rule set as JSON."""


@attrs.define
class Locate:
    """Resolve the configured host entry points and report what was found.

    Exit code is 1 when any configured path fails to resolve.
    """

    json: bool = False
    """Output results as JSON."""


@attrs.define
class Css:
    """Print the stylesheet injected for hidden items."""


# Type alias for all subcommands
Command = (
    Annotated[Classify, tyro.conf.subcommand(name="classify")]
    | Annotated[Rules, tyro.conf.subcommand(name="rules")]
    | Annotated[Locate, tyro.conf.subcommand(name="locate")]
    | Annotated[Css, tyro.conf.subcommand(name="css")]
)


def setup_logging() -> None:
    """Configure logging with 100-character text width."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)-20s - %(levelname)-8s - %(message).100s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def load_config(config_dir: Path) -> ShowHiddenConfig:
    """Load showhidden.yaml from a config directory (defaults when absent)."""
    return ShowHiddenConfig.from_yaml(config_dir / CONFIG_FILENAME)


def parse_bitmask(text: str) -> int:
    """Parse a bitmask given as decimal, hex or binary.

    Raises:
        ValueError: If the text is not a non-negative integer literal
    """
    value = int(text.strip().replace("_", ""), 0)
    if value < 0:
        raise ValueError(f"bitmask must be non-negative, got {value}")
    return value


def format_alias(alias: Any) -> str:
    """Display form of a legacy alias; only a missing alias shows as '-'."""
    return "-" if alias is None else str(alias)


def handle_classify(config: ShowHiddenConfig, cmd: Classify) -> None:
    """Print the verdict and the augmented bitmask."""
    try:
        raw = parse_bitmask(cmd.bitmask)
    except ValueError as e:
        print(f"Error: invalid bitmask '{cmd.bitmask}': {e}", file=sys.stderr)
        sys.exit(1)

    bit = cmd.bit if cmd.bit is not None else config.capability_bit
    verdict = classify(raw, bit)
    augmented = CapabilityOverridePolicy(config.rule_set()).augment_raw_bitmask(raw)

    if cmd.json:
        data = {"bitmask": raw, "bit": bit, "visibility": verdict.value, "augmented": augmented}
        Console().print_json(json.dumps(data))
        return

    colour = "green" if verdict is Visibility.VISIBLE else "yellow"
    print(f"[bold]{raw:#b}[/bold] & {bit:#b} → [{colour}]{verdict.value}[/{colour}]")
    print(f"augmented: {augmented:#b} ({augmented})")


def show_rules(config: ShowHiddenConfig, json_output: bool = False) -> None:
    """Print the active rule set."""
    rule_set = config.rule_set()

    if json_output:
        data = {
            "mode": config.mode,
            "rules": [
                {"bit": r.bit, "granted": r.granted, "legacy_alias": r.legacy_alias} for r in rule_set.rules
            ],
            "settings": {s.name: s.value for s in rule_set.settings},
        }
        Console().print_json(json.dumps(data))
        return

    console = Console()
    console.print(Panel(f"[bold cyan]Override rules[/bold cyan] ({config.mode} mode)", expand=False))

    table = Table(show_header=True, header_style="bold")
    table.add_column("Capability bit", style="cyan")
    table.add_column("Legacy alias", style="green")
    table.add_column("Forced result", style="yellow")
    for rule in rule_set.rules:
        table.add_row(f"{rule.bit:#x} (1 << {rule.bit.bit_length() - 1})", format_alias(rule.legacy_alias), "granted")
    console.print(table)

    if rule_set.settings:
        settings = Table(show_header=True, header_style="bold")
        settings.add_column("Setting", style="cyan")
        settings.add_column("Forced value", style="yellow")
        for setting in rule_set.settings:
            settings.add_row(setting.name, repr(setting.value))
        console.print(settings)
    else:
        console.print("[dim]No host settings forced (narrow mode)[/dim]")


def show_locate(config: ShowHiddenConfig, json_output: bool = False) -> int:
    """Resolve every configured host path.

    Returns:
        Number of configured paths that failed to resolve
    """
    locator = ImportLocator(config.host)
    finders = {
        "access_query": locator.find_access_query,
        "bitmask_lookup": locator.find_bitmask_lookup,
        "item_renderer": locator.find_item_renderer,
        "content_renderer": locator.find_content_renderer,
        "setting_getter": locator.find_setting_getter,
        "style_service": locator.find_style_service,
        "toast_service": locator.find_toast_service,
    }

    results: dict[str, dict[str, Any]] = {}
    failures = 0
    for kind, find in finders.items():
        path = getattr(config.host, kind)
        found = find() is not None if path else False
        if path and not found:
            failures += 1
        results[kind] = {"path": path, "found": found}

    if json_output:
        Console().print_json(json.dumps(results))
        return failures

    table = Table(show_header=True, header_style="bold")
    table.add_column("Entry point", style="cyan")
    table.add_column("Path")
    table.add_column("Status")
    for kind, result in results.items():
        if not result["path"]:
            status = "[dim]not configured[/dim]"
        elif result["found"]:
            status = "[green]found[/green]"
        else:
            status = "[red]missing[/red]"
        table.add_row(kind, result["path"] or "-", status)
    Console().print(table)
    return failures


def main(
    cmd: Annotated[Command, tyro.conf.arg(name="")],
    *,
    config_dir: Annotated[Path | None, tyro.conf.arg(help="Configuration directory")] = None,
) -> None:
    """showhidden - reveal hidden items without granting access.

    Inspect the capability override rules and the host entry points a
    session would hook.
    """
    if config_dir is None:
        config_dir = Path.home() / ".showhidden"

    setup_logging()
    config = load_config(config_dir)

    if isinstance(cmd, Classify):
        handle_classify(config, cmd)

    elif isinstance(cmd, Rules):
        show_rules(config, json_output=cmd.json)

    elif isinstance(cmd, Locate):
        failures = show_locate(config, json_output=cmd.json)
        sys.exit(1 if failures else 0)

    elif isinstance(cmd, Css):
        # Plain print so the CSS is not treated as rich markup
        sys.stdout.write(stylesheet(config.hidden_class, LOCKED_CLASS) + "\n")


def entry_point() -> None:
    """Entry point for the showhidden command."""
    tyro.cli(main)


if __name__ == "__main__":
    entry_point()
