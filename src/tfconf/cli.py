"""
tfconf command line.

Usage:
    tfconf validate CONFIG [--var NAME=VALUE ...] [--var-file FILE ...] [--json]
    tfconf evaluate CONFIG [--var NAME=VALUE ...] [--var-file FILE ...] [--json]
    tfconf graph CONFIG

Exit codes:
    0  configuration is valid
    1  one or more diagnostics (type mismatch, failed validation, ...)
    2  usage error, unreadable configuration or variable file
"""

import argparse
import json
import logging
import os
import sys

from tfconf.evaluate import (
    ConfigError,
    EvaluationContext,
    UndeclaredVariableError,
    VarFileError,
    build_graph,
    evaluation_order,
    parse_cli_assignment,
    to_display,
    to_json_compatible,
    validate_configuration,
)
from tfconf.framework import LoadError, load_configuration
from tfconf.settings import Settings, get_settings

logger = logging.getLogger("tfconf")

EXIT_OK = 0
EXIT_DIAGNOSTICS = 1
EXIT_USAGE = 2


def _assignment(text: str) -> tuple[str, str]:
    try:
        return parse_cli_assignment(text)
    except ConfigError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tfconf",
        description="Validate and evaluate typed infrastructure configurations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("validate", "Check input values against variable types and validation rules"),
        ("evaluate", "Evaluate the configuration and print its outputs"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("config", help="Configuration document (.json, .yaml, .yml)")
        cmd.add_argument("--var", action="append", default=[], type=_assignment,
                         metavar="NAME=VALUE",
                         help="Set an input variable (repeatable)")
        cmd.add_argument("--var-file", action="append", default=[], metavar="FILE",
                         help="Load input variables from a JSON/YAML file (repeatable)")
        cmd.add_argument("--json", action="store_true", help="Print machine-readable JSON")
        cmd.add_argument("--strict-objects", action="store_true", default=None,
                         help="Reject undeclared object attributes")

    graph = sub.add_parser("graph", help="Print the evaluation order of declarations")
    graph.add_argument("config", help="Configuration document (.json, .yaml, .yml)")
    return parser


def _setup_logging(settings: Settings, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, settings.log_level),
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _print_diagnostics(ctx: EvaluationContext, as_json: bool) -> None:
    if as_json:
        print(json.dumps({
            "valid": False,
            "diagnostics": [d.model_dump(mode="json") for d in ctx.diagnostics],
        }, indent=2))
        return
    for diag in ctx.diagnostics:
        where = f" ({diag.address})" if diag.address else ""
        print(f"Error: {diag.summary}{where}", file=sys.stderr)
        if diag.detail:
            print(f"  {diag.detail}", file=sys.stderr)


def _run(args: argparse.Namespace, settings: Settings) -> int:
    config = load_configuration(args.config)
    logger.debug("Running %s on %s", args.command, args.config)

    if args.command == "graph":
        for address in evaluation_order(build_graph(config)):
            print(address)
        return EXIT_OK

    cli_vars = dict(args.var)
    strict = settings.strict_objects if args.strict_objects is None else args.strict_objects
    ctx = validate_configuration(
        config,
        cli_vars=cli_vars,
        env=os.environ,
        var_files=args.var_file,
        env_prefix=settings.var_env_prefix,
        strict_objects=strict,
    )
    if not ctx.ok:
        _print_diagnostics(ctx, args.json)
        return EXIT_DIAGNOSTICS

    if args.command == "validate":
        if args.json:
            print(json.dumps({"valid": True, "diagnostics": []}, indent=2))
        else:
            print(f"Success! The configuration is valid ({len(config.variables)} variables).")
        return EXIT_OK

    outputs = ctx.output_values(mask_sensitive=settings.mask_sensitive)
    if args.json:
        print(json.dumps(to_json_compatible(outputs), indent=2, sort_keys=True))
    else:
        for name, value in outputs.items():
            print(f"{name} = {to_display(value)}")
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    _setup_logging(settings, args.verbose)

    try:
        return _run(args, settings)
    except (LoadError, VarFileError, UndeclaredVariableError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_USAGE
    except ConfigError as exc:
        # Input values that cannot be parsed, reference cycles
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_DIAGNOSTICS


if __name__ == "__main__":
    sys.exit(main())
