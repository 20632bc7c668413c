# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
CLI entrypoint for the Matomo release builder.

Every operation is a subcommand of `matomo-release`. The global options
(--config, --log-level, --dry-run, --project-dir) are inherited by every
subcommand through argparse's parent parser mechanism.

Usage:
    matomo-release run <version> [matomo|piwik]
    matomo-release run build                 # unsigned build of the current checkout
    matomo-release verify 5.2.0
    matomo-release manifest path/to/tree
    matomo-release verify-manifest path/to/tree
    matomo-release check-env
"""

import argparse
import sys
from typing import NoReturn

from matomo_packager.cli.commands import (
    handle_check_env,
    handle_manifest,
    handle_run,
    handle_verify,
    handle_verify_manifest,
)
from matomo_packager.cli.exit_codes import USAGE_ERROR


class _UsageArgumentParser(argparse.ArgumentParser):
    """
    ArgumentParser whose errors exit with USAGE_ERROR.

    argparse exits with 2 on bad arguments, which this tool reserves for
    failed builds.
    """

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(USAGE_ERROR, f"{self.prog}: error: {message}\n")


def _build_global_parser() -> argparse.ArgumentParser:
    """
    Build the parent parser with global options.

    add_help=False so help text doesn't collide between the parent and the
    subcommand parsers.
    """
    parent = _UsageArgumentParser(add_help=False)
    parent.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to YAML configuration file.",
    )
    parent.add_argument(
        "--log-level",
        type=str,
        default=None,
        dest="log_level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging verbosity level (overrides the config file).",
    )
    parent.add_argument(
        "--dry-run",
        action="store_true",
        default=False,
        dest="dry_run",
        help="Log what would be done without touching anything.",
    )
    parent.add_argument(
        "--project-dir",
        type=str,
        default=".",
        dest="project_dir",
        help="Directory holding the working tree and archives (default: current directory).",
    )
    return parent


def _add_version_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "version",
        help="Package version to publish (a git tag), or 'build' to package the current checkout unsigned.",
    )
    parser.add_argument(
        "flavour",
        nargs="?",
        default=None,
        help="Base name of the archives: 'matomo' or 'piwik'. Both are built if omitted.",
    )


def _register_subcommands(
    subparsers: argparse._SubParsersAction,  # type: ignore[type-arg]
    parent: argparse.ArgumentParser,
) -> None:
    """Register every subcommand and its handler via set_defaults(func=...)."""
    run_parser = subparsers.add_parser(
        "run", parents=[parent], help="Build, sign and verify release archives."
    )
    _add_version_arguments(run_parser)
    run_parser.set_defaults(func=handle_run)

    verify_parser = subparsers.add_parser(
        "verify", parents=[parent], help="Verify signatures of built archives."
    )
    _add_version_arguments(verify_parser)
    verify_parser.set_defaults(func=handle_verify)

    for name, help_text, handler in [
        ("manifest", "Regenerate config/manifest.inc.php for a tree.", handle_manifest),
        ("verify-manifest", "Check a tree against its manifest.", handle_verify_manifest),
    ]:
        parser = subparsers.add_parser(name, parents=[parent], help=help_text)
        parser.add_argument("tree", help="Root directory of an organized Matomo tree.")
        parser.set_defaults(func=handler)

    env_parser = subparsers.add_parser(
        "check-env", parents=[parent], help="Check that required tools are installed."
    )
    env_parser.set_defaults(func=handle_check_env)


def build_parser() -> argparse.ArgumentParser:
    parent = _build_global_parser()
    root_parser = _UsageArgumentParser(
        prog="matomo-release",
        description="Build signed Matomo release archives.",
        parents=[parent],
    )
    subparsers = root_parser.add_subparsers(dest="command", parser_class=_UsageArgumentParser)
    _register_subcommands(subparsers, parent)
    return root_parser


def main() -> None:
    """
    Main CLI entrypoint, referenced by pyproject.toml's [project.scripts].

    If no subcommand is given, help is shown and the exit code is USAGE_ERROR.
    """
    root_parser = build_parser()
    args = root_parser.parse_args()

    if not hasattr(args, "func") or args.func is None:
        root_parser.print_help()
        sys.exit(USAGE_ERROR)

    exit_code = args.func(args)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
