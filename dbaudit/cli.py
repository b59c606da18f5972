"""dbaudit CLI.

Provides command-line helpers for operators:
- Validating an audit configuration file
- Previewing the audit line a configuration produces for a sample call
"""

from __future__ import annotations

import argparse
import json
import sys
import uuid

from . import __version__
from .backends import LoggingBackend
from .config import load_config
from .entry import AuditEvent, Status
from .errors import AuditError
from .factory import compile_log_format
from .redaction import OperationRedactor, RedactionConfig
from .resources import Permission, parse_resource


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog="dbaudit",
        description="Audit pipeline tools for database servers",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    validate_parser = subparsers.add_parser(
        "validate",
        help="Validate an audit configuration",
        description="Load the configuration and compile its log format",
    )
    validate_parser.add_argument("config", nargs="?", default=None, help="Configuration file")
    validate_parser.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output as JSON",
    )

    preview_parser = subparsers.add_parser(
        "preview",
        help="Preview the audit line for a sample call",
        description="Redact and render a sample audit event with the configured format",
    )
    preview_parser.add_argument("config", nargs="?", default=None, help="Configuration file")
    preview_parser.add_argument("--user", default="cassandra", help="Principal name")
    preview_parser.add_argument("--operation", default="SELECT * FROM ks.tbl", help="Operation text")
    preview_parser.add_argument("--resource", default="data/ks/tbl", help="Resource name")
    preview_parser.add_argument(
        "--permission",
        action="append",
        choices=[p.value for p in Permission],
        help="Permission exercised (repeatable)",
    )
    preview_parser.add_argument(
        "--status",
        default=Status.ATTEMPT.value,
        choices=[s.value for s in Status],
        help="Status of the call",
    )
    preview_parser.add_argument("--client", default="127.0.0.1", help="Client address")
    preview_parser.add_argument("--batch", action="store_true", help="Attach a random batch id")

    return parser


def run_validate(args: argparse.Namespace) -> int:
    """Run the validate command."""
    config = load_config(args.config)
    template = compile_log_format(config.logger, LoggingBackend())

    if args.json_output:
        print(
            json.dumps(
                {
                    "valid": True,
                    "filter": config.filter.value,
                    "backend": config.backend.type.value,
                    "template": template.template,
                    "fields": template.field_names,
                },
                indent=2,
            )
        )
    else:
        print(f"Configuration OK (filter={config.filter.value}, backend={config.backend.type.value})")
        print(f"Template: {template.template}")
        print(f"Fields:   {', '.join(template.field_names) or '-'}")
    return 0


def run_preview(args: argparse.Namespace) -> int:
    """Run the preview command."""
    config = load_config(args.config)
    template = compile_log_format(config.logger, LoggingBackend())
    redactor = OperationRedactor(
        RedactionConfig(redact_unknown_operation=config.redact_unknown_operation)
    )

    try:
        resource = parse_resource(args.resource)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    event = AuditEvent(
        principal=args.user,
        client_address=args.client,
        batch_id=uuid.uuid4() if args.batch else None,
        status=Status(args.status),
        operation=args.operation,
        permissions=frozenset(Permission(p) for p in (args.permission or [])),
        resource=resource,
    )

    print(template.interpolate(redactor.redact(event)))
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        if args.command == "validate":
            return run_validate(args)
        elif args.command == "preview":
            return run_preview(args)
        else:
            parser.print_help()
            return 1
    except AuditError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
