#!/usr/bin/env python3
"""
DaoVsDao CLI

Command-line access to the engine's configuration and scenario runner.

Usage:
    daovsdao <command> [subcommand] [options]

Commands:
    config      Configuration management (show, get, validate, schema)
    scenario    Run YAML scenarios against a fresh game
"""

from __future__ import annotations

import argparse
import json
import sys
from enum import Enum
from typing import Any, List, Optional

import yaml

from daovsdao import __version__
from daovsdao.config import ConfigError, get_config_manager
from daovsdao.observability import GameLayer, configure_logging, get_logger

logger = get_logger("main", GameLayer.CLI)


class OutputFormat(Enum):
    """Output format options."""
    JSON = "json"
    YAML = "yaml"
    TABLE = "table"
    TEXT = "text"


class CLIError(Exception):
    """CLI error with exit code."""
    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


def format_output(data: Any, fmt: OutputFormat = OutputFormat.JSON) -> str:
    """Format data for output."""
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, default=str)
    elif fmt == OutputFormat.YAML:
        return yaml.dump(data, default_flow_style=False)
    elif fmt == OutputFormat.TABLE:
        return _format_table(data)
    else:
        return str(data)


def _format_table(data: Any) -> str:
    """Format data as ASCII table."""
    if isinstance(data, list) and data and isinstance(data[0], dict):
        headers = list(data[0].keys())
        rows = [[str(row.get(h, ""))[:42] for h in headers] for row in data]
        widths = [max(len(h), max(len(r[i]) for r in rows)) for i, h in enumerate(headers)]

        lines = []
        lines.append(" | ".join(h.ljust(widths[i]) for i, h in enumerate(headers)))
        lines.append("-+-".join("-" * w for w in widths))
        for row in rows:
            lines.append(" | ".join(c.ljust(widths[i]) for i, c in enumerate(row)))
        return "\n".join(lines)
    elif isinstance(data, dict):
        return "\n".join(f"{k}: {v}" for k, v in data.items())
    return str(data)


class DaoVsDaoCLI:
    """Main CLI application."""

    def __init__(self):
        self.parser = argparse.ArgumentParser(
            prog="daovsdao",
            description="DaoVsDao game engine CLI",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"daovsdao {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "table", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="Configuration file to load before running the command",
        )
        self.parser.add_argument(
            "--log-level",
            choices=["debug", "info", "warning", "error", "critical"],
            help="Log level (default: observability.log_level)",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Suppress non-essential output",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_config_commands()
        self._register_scenario_commands()

    def _register_config_commands(self) -> None:
        """Register config subcommands."""
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        config_sub.add_parser("show", help="Show current configuration")

        get = config_sub.add_parser("get", help="Get a configuration value")
        get.add_argument("path", help="Dotted path, e.g. economics.slashing_tax")

        config_sub.add_parser("validate", help="Validate current configuration")
        config_sub.add_parser("schema", help="Describe every configuration value")

    def _register_scenario_commands(self) -> None:
        """Register scenario subcommands."""
        scenario = self.subparsers.add_parser("scenario", help="Scenario execution")
        scenario_sub = scenario.add_subparsers(dest="subcommand")

        run = scenario_sub.add_parser("run", help="Run a scenario file")
        run.add_argument("file", help="Scenario YAML file")
        run.add_argument(
            "--summary", "-s",
            action="store_true",
            help="Print step outcomes and digest without the final state",
        )

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run the CLI."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 0

        try:
            mgr = get_config_manager()
            if parsed.config:
                mgr.load_from_file(parsed.config)
            obs = mgr.config.observability
            configure_logging(
                level="error" if parsed.quiet else (parsed.log_level or obs.log_level.get()),
                fmt=obs.log_format.get(),
            )

            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return 0

        except CLIError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except ConfigError as e:
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 2

        except Exception as e:
            logger.error(f"Command {parsed.command} failed", error_code="internal", exc_info=True)
            if not parsed.quiet:
                print(f"Error: {e}", file=sys.stderr)
            return 1

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}".rstrip())

        return handler(args)

    # Config handlers
    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        return get_config_manager().config.to_dict()

    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        mgr = get_config_manager()
        return {"path": args.path, "value": mgr.get(args.path)}

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        errors = get_config_manager().validate()
        if errors:
            raise CLIError("Invalid configuration: " + "; ".join(errors))
        return {"valid": True, "errors": []}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        return get_config_manager().export_schema()

    # Scenario handlers
    def _handle_scenario_run(self, args: argparse.Namespace) -> Any:
        from daovsdao.errors import GameError
        from daovsdao.scenario import ScenarioError, run_scenario

        try:
            result = run_scenario(args.file)
        except (ScenarioError, GameError) as e:
            logger.warning("Scenario failed", scenario=args.file, reason=str(e))
            raise CLIError(f"Scenario failed: {e}") from e

        if not result.passed:
            raise CLIError("Invariant violations: " + "; ".join(result.violations), exit_code=3)

        data = result.to_dict()
        if args.summary:
            data.pop("final_state")
            if OutputFormat(args.format) == OutputFormat.TABLE:
                return data["steps"]
        return data


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    cli = DaoVsDaoCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
