#!/usr/bin/env python3
"""
followme - Prompt-Driven Tool-Orchestrated Automation
=====================================================

Main entry point.

Usage:
    python main.py "show me what is taking disk space"   # Plan and execute
    python main.py --mock-llm "anything"                 # Offline, canned plan
    python main.py --list-tools                          # Show the tool catalogue
    python main.py --list-macros                         # Show stored macros
    python main.py --run-macro NAME                      # Replay a stored macro
    python main.py --help                                # Show help
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List

# Ensure project root is in path
sys.path.insert(0, str(Path(__file__).parent))

from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from api import create_client_from_settings
from core import AgentError, MacroNotFound, user_message
from core.runtime import create_context, handle_user_prompt
from core.types import StepResult
from infra import Store, configure_logging, load_config
from planner import MockLLMClient
from tools import MacroRunner, ToolExecutor, ToolRegistry
from tools.builtin import register_builtin_tools


# Setup rich console
console = Console()


def make_confirmer(auto_yes: bool):
    """Confirmer that asks on the terminal, or always approves with --yes."""

    def confirm(prompt: str, meta: Dict[str, Any]) -> bool:
        if auto_yes:
            console.print(f"[dim]Auto-confirmed: {prompt}[/dim]")
            return True
        caps = ", ".join(meta.get("capabilities", []))
        console.print(f"[yellow]Capabilities:[/yellow] {caps}")
        return Confirm.ask(prompt, console=console, default=False)

    return confirm


def context_logger(message: str, meta: Dict[str, Any] = None) -> None:
    console.print(f"[dim]{message}[/dim]")


def print_tools(registry: ToolRegistry) -> None:
    table = Table(title="Tools")
    table.add_column("Name", style="cyan")
    table.add_column("Mutates")
    table.add_column("Capabilities")
    table.add_column("Description", style="dim")

    for info in registry.list():
        table.add_row(
            info.name,
            "[red]yes[/red]" if info.mutate else "no",
            ", ".join(info.capabilities),
            info.description,
        )
    console.print(table)


def print_macros(store: Store) -> None:
    macros = store.load_macros()
    if not macros:
        console.print("[yellow]No macros stored.[/yellow]")
        return

    table = Table(title="Macros")
    table.add_column("Name", style="cyan")
    table.add_column("Steps")
    table.add_column("Updated", style="dim")
    for macro in macros:
        table.add_row(macro.name, str(len(macro.steps)), macro.updated_at.isoformat(timespec="seconds"))
    console.print(table)


def print_results(results: List[StepResult], title: str = "Results") -> None:
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Step", style="cyan")
    table.add_column("Status")
    table.add_column("Output / Error", overflow="fold")

    for index, result in enumerate(results, start=1):
        step = result.step
        name = getattr(step, "tool", None) or getattr(step, "command", "?")
        if result.success:
            body = json.dumps(result.output, indent=2, default=str)
            table.add_row(str(index), name, "[green]ok[/green]", body)
        else:
            table.add_row(str(index), name, "[red]failed[/red]", result.error)
    console.print(table)


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="followme - Prompt-Driven Automation"
    )
    parser.add_argument(
        "prompt",
        nargs="?",
        help="What you want done, in plain language"
    )
    parser.add_argument(
        "--mock-llm",
        action="store_true",
        help="Use mock LLM for testing (no API key needed)"
    )
    parser.add_argument(
        "--config", "-c",
        default="config.yaml",
        help="Path to configuration file"
    )
    parser.add_argument(
        "--log-level", "-l",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (overrides config)"
    )
    parser.add_argument(
        "--yes", "-y",
        action="store_true",
        help="Approve every mutating tool without asking"
    )
    parser.add_argument("--list-tools", action="store_true", help="List registered tools")
    parser.add_argument("--list-macros", action="store_true", help="List stored macros")
    parser.add_argument("--run-macro", metavar="NAME", help="Run a stored macro")

    args = parser.parse_args()

    config = load_config(args.config)
    level = args.log_level or config.logging.level
    configure_logging(
        level=getattr(logging, level),
        log_dir=config.logging.dir,
        console=config.logging.console,
        file=config.logging.file,
    )
    logger = logging.getLogger("followme.main")

    try:
        with Store(config.database) as store:
            registry = register_builtin_tools(ToolRegistry(), store)
            overrides = {
                "logger": context_logger,
                "confirmer": make_confirmer(args.yes),
                "policy": config.to_policy(),
            }

            if args.list_tools:
                print_tools(registry)
                return 0

            if args.list_macros:
                print_macros(store)
                return 0

            if args.run_macro:
                macro = store.get_macro(args.run_macro)
                if macro is None:
                    raise MacroNotFound(args.run_macro)
                runner = MacroRunner(ToolExecutor(registry))
                results = runner.run(macro, create_context(None, **overrides))
                print_results(results, title=f"Macro: {macro.name}")
                return 0

            if not args.prompt:
                parser.print_help()
                return 2

            if args.mock_llm or config.llm.mock:
                llm = MockLLMClient()
                console.print("[yellow]Using mock LLM[/yellow]")
            else:
                llm = create_client_from_settings(config.llm)

            result = handle_user_prompt(args.prompt, llm, registry, store, **overrides)
            console.print(Panel(result.plan.summary or "(no summary)", title="Plan", border_style="blue"))
            print_results(result.results)
            return 1 if result.failed else 0

    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130
    except AgentError as e:
        logger.error(f"{e.category.name}: {e.message}")
        console.print(f"[bold red]Error:[/bold red] {user_message(e)}")
        return 1
    except Exception as e:
        logger.exception("Fatal error")
        console.print(f"[bold red]Error:[/bold red] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
