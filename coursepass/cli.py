#!/usr/bin/env python3
"""
coursepass CLI

Command-line access to the course registry and its tooling.

Usage:
    coursepass <command> [subcommand] [options]

Commands:
    genesis     Validate or load a genesis document
    scenario    Replay a scenario against a fresh registry
    dna         DNA mixing and course id derivation
    config      Configuration management
"""

from __future__ import annotations

import argparse
import json
import sys
from enum import Enum
from typing import Any, List, Optional

import yaml

from coursepass import __version__
from coursepass.config import ConfigError, get_config_manager
from coursepass.core import load_document, to_jsonable
from coursepass.dna import mix_dna
from coursepass.errors import RegistryError
from coursepass.hardening import ValidationError, Validators
from coursepass.identity import derive_course_id
from coursepass.model import DEFAULT_CREDITS, Course, CourseYear
from coursepass.observability import Layer, configure_logging, get_logger
from coursepass.schema import SchemaError, schema_errors

logger = get_logger("cli", Layer.CLI)


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
    data = to_jsonable(data)
    if fmt == OutputFormat.JSON:
        return json.dumps(data, indent=2, sort_keys=True)
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
        rows = [[str(row.get(h, ""))[:66] for h in headers] for row in data]
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


class CoursePassCLI:
    """Main CLI application."""

    def __init__(self):
        self.exit_code = 0
        self.parser = argparse.ArgumentParser(
            prog="coursepass",
            description="Course registry CLI",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        self.parser.add_argument(
            "--version", "-V",
            action="version",
            version=f"coursepass {__version__}",
        )
        self.parser.add_argument(
            "--format", "-f",
            choices=["json", "yaml", "table", "text"],
            default="json",
            help="Output format (default: json)",
        )
        self.parser.add_argument(
            "--config", "-c",
            help="YAML configuration file",
        )
        self.parser.add_argument(
            "--quiet", "-q",
            action="store_true",
            help="Only log errors",
        )

        self.subparsers = self.parser.add_subparsers(dest="command", help="Commands")
        self._register_commands()

    def _register_commands(self) -> None:
        self._register_genesis_commands()
        self._register_scenario_commands()
        self._register_dna_commands()
        self._register_config_commands()

    def _register_genesis_commands(self) -> None:
        genesis = self.subparsers.add_parser("genesis", help="Genesis documents")
        genesis_sub = genesis.add_subparsers(dest="subcommand")

        validate = genesis_sub.add_parser("validate", help="Check a genesis file against its schema")
        validate.add_argument("file", help="YAML or JSON genesis file")

        load = genesis_sub.add_parser("load", help="Seed a fresh registry and print its state")
        load.add_argument("file", help="YAML or JSON genesis file")

    def _register_scenario_commands(self) -> None:
        scenario = self.subparsers.add_parser("scenario", help="Scenario replay")
        scenario_sub = scenario.add_subparsers(dest="subcommand")

        run = scenario_sub.add_parser("run", help="Run a scenario file")
        run.add_argument("file", help="YAML or JSON scenario file")

    def _register_dna_commands(self) -> None:
        dna = self.subparsers.add_parser("dna", help="DNA tools")
        dna_sub = dna.add_subparsers(dest="subcommand")

        breed = dna_sub.add_parser("breed", help="Mix two fingerprints under a mask")
        breed.add_argument("first", help="First parent DNA (32 hex chars)")
        breed.add_argument("second", help="Second parent DNA (32 hex chars)")
        breed.add_argument("--mask", "-m", required=True, help="Mask (32 hex chars)")

        ident = dna_sub.add_parser("id", help="Derive the id a course would get at mint")
        ident.add_argument("--owner", "-o", required=True, help="Owning account")
        ident.add_argument("--dna", "-d", required=True, help="DNA (32 hex chars)")
        ident.add_argument("--course-year", "-y", default=CourseYear.FIRST.value, help="Course year")
        ident.add_argument("--credits", type=int, default=DEFAULT_CREDITS, help="Credits")

    def _register_config_commands(self) -> None:
        config = self.subparsers.add_parser("config", help="Configuration management")
        config_sub = config.add_subparsers(dest="subcommand")

        get = config_sub.add_parser("get", help="Get configuration value")
        get.add_argument("path", help="Config path (e.g., registry.max_courses_owned)")

        config_sub.add_parser("show", help="Show all configuration")
        config_sub.add_parser("validate", help="Validate configuration")
        config_sub.add_parser("schema", help="Export configuration schema")

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
            observability = mgr.config.observability
            configure_logging(
                "error" if parsed.quiet else observability.log_level.get(),
                observability.log_format.get(),
            )

            fmt = OutputFormat(parsed.format)
            result = self._dispatch(parsed)

            if result is not None:
                print(format_output(result, fmt))

            return self.exit_code

        except CLIError as e:
            print(f"Error: {e}", file=sys.stderr)
            return e.exit_code

        except (ConfigError, SchemaError, ValidationError, RegistryError, OSError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        except Exception as e:
            logger.error(f"Unhandled error: {e}", exc_info=True)
            print(f"Error: {e}", file=sys.stderr)
            return 1

    def _dispatch(self, args: argparse.Namespace) -> Any:
        """Dispatch command to handler."""
        cmd = args.command
        subcmd = getattr(args, "subcommand", None)

        handler_name = f"_handle_{cmd}_{subcmd}" if subcmd else f"_handle_{cmd}"
        handler = getattr(self, handler_name, None)

        if handler is None:
            raise CLIError(f"Unknown command: {cmd} {subcmd or ''}".strip(), exit_code=2)

        return handler(args)

    @staticmethod
    def _load_mapping(path: str) -> dict:
        data = load_document(path)
        if not isinstance(data, dict):
            raise CLIError(f"{path}: document must be a mapping")
        return data

    # Genesis handlers
    def _handle_genesis_validate(self, args: argparse.Namespace) -> Any:
        data = self._load_mapping(args.file)
        errors = schema_errors(data, "genesis")
        if errors:
            self.exit_code = 1
        return {
            "file": args.file,
            "valid": not errors,
            "errors": errors,
            "courses": len(data.get("courses") or []),
        }

    def _handle_genesis_load(self, args: argparse.Namespace) -> Any:
        from coursepass.genesis import GenesisConfig, seed
        from coursepass.runtime import Runtime

        genesis = GenesisConfig.load(args.file)
        runtime = Runtime.build()
        report = seed(runtime.engine, genesis.entries)
        if not report.ok:
            self.exit_code = 1
        return {"report": report.to_dict(), "state": runtime.engine.snapshot()}

    # Scenario handlers
    def _handle_scenario_run(self, args: argparse.Namespace) -> Any:
        from coursepass.runtime import Runtime

        document = self._load_mapping(args.file)
        runtime = Runtime.for_scenario(document)
        report = runtime.run_scenario(document)
        if report.unmet:
            self.exit_code = 2
        return report.to_dict()

    # DNA handlers
    def _handle_dna_breed(self, args: argparse.Namespace) -> Any:
        child = mix_dna(args.mask, args.first, args.second)
        return {"child": child.hex()}

    def _handle_dna_id(self, args: argparse.Namespace) -> Any:
        try:
            year = CourseYear.parse(args.course_year)
        except ValueError as exc:
            raise CLIError(str(exc)) from None
        course = Course(
            dna=Validators.validate_dna(args.dna).unwrap(),
            course_year=year,
            credits=Validators.validate_credits(args.credits).unwrap(),
            owner=Validators.validate_account(args.owner, "owner").unwrap(),
        )
        return {"course_id": derive_course_id(course), "course": course.to_dict()}

    # Config handlers
    def _handle_config_get(self, args: argparse.Namespace) -> Any:
        value = get_config_manager().get(args.path)
        if hasattr(value, "__dataclass_fields__"):
            value = {k: getattr(value, k).get() for k in value.__dataclass_fields__}
        return {"path": args.path, "value": value}

    def _handle_config_show(self, args: argparse.Namespace) -> Any:
        return get_config_manager().config.to_dict()

    def _handle_config_validate(self, args: argparse.Namespace) -> Any:
        errors = get_config_manager().validate()
        if errors:
            self.exit_code = 1
        return {"valid": len(errors) == 0, "errors": errors}

    def _handle_config_schema(self, args: argparse.Namespace) -> Any:
        return get_config_manager().export_schema()


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    cli = CoursePassCLI()
    return cli.run(argv)


if __name__ == "__main__":
    sys.exit(main())
