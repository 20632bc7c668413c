# Author : Eshan Roy <eshanized@proton.me>
# SPDX-License-Identifier: MIT

"""
Subcommand handlers for the matomo-release CLI.

Each function corresponds to one subcommand, takes the parsed arguments and
returns an exit code. This is the only layer that turns exceptions into exit
codes; everything below raises.

No print() calls. Everything goes through the structured logger.
"""

import argparse
import logging
from pathlib import Path

import httpx

from matomo_packager.cli.exit_codes import FATAL_ERROR, SUCCESS, USAGE_ERROR
from matomo_packager.config.exceptions import ConfigError
from matomo_packager.config.loader import load_config
from matomo_packager.config.schema import BuilderConfig
from matomo_packager.logging.logger import configure_package_logging, get_logger
from matomo_packager.release.descriptor import create_descriptor
from matomo_packager.release.errors import ReleaseError, UsageError
from matomo_packager.utils.process import CommandRunner


def _load_and_configure(
    args: argparse.Namespace,
    command_name: str,
) -> tuple[int, BuilderConfig | None, logging.Logger]:
    """
    The shared setup every command needs: load config, apply log settings.

    Returns (exit_code, config, logger). If exit_code is not SUCCESS the
    caller returns it immediately.
    """
    logger = get_logger(f"matomo_packager.cli.{command_name}", log_level=args.log_level or "INFO")

    try:
        config = load_config(Path(args.config) if args.config is not None else None)
    except ConfigError as err:
        logger.error("Configuration error", extra={"command": command_name, "error": str(err)})
        return FATAL_ERROR, None, logger

    # An explicit --log-level wins over the config file.
    log_level = args.log_level if args.log_level is not None else config.global_config.log_level
    log_file = None
    if config.global_config.log_file is not None:
        log_file = Path(args.project_dir) / config.global_config.log_file
    configure_package_logging(log_level, log_file)

    return SUCCESS, config, logger


def handle_run(args: argparse.Namespace) -> int:
    """Build, sign and verify release archives for a version."""
    exit_code, config, logger = _load_and_configure(args, "run")
    if exit_code != SUCCESS or config is None:
        return exit_code

    try:
        descriptor = create_descriptor(args.version, args.flavour, config.release.flavours)
    except UsageError as err:
        logger.error("Usage error", extra={"command": "run", "error": str(err)})
        return USAGE_ERROR

    project_dir = Path(args.project_dir).resolve()
    logger.info(
        "Building archives",
        extra={
            "version": descriptor.version,
            "major_version": descriptor.major_version,
            "flavours": list(descriptor.flavours),
            "working_directory": str(project_dir),
            "dry_run": args.dry_run,
        },
    )

    if args.dry_run:
        logger.info(
            "Dry run: would build release",
            extra={
                "working_tree": str(project_dir / config.release.working_tree),
                "archive_dir": str(project_dir / config.release.archive_dir),
                "signed": not descriptor.is_local_build,
            },
        )
        return SUCCESS

    from matomo_packager.release.pipeline import build_release

    runner = CommandRunner(timeout=config.release.command_timeout_seconds)
    try:
        with httpx.Client(timeout=config.release.command_timeout_seconds) as client:
            result = build_release(descriptor, config.release, project_dir, runner, client)
    except ReleaseError as err:
        logger.error(
            "Release failed",
            extra={"command": "run", "phase": type(err).__name__, "error": str(err)},
        )
        return FATAL_ERROR
    except (OSError, UnicodeError) as err:
        logger.error("Release failed", extra={"command": "run", "error": str(err)}, exc_info=True)
        return FATAL_ERROR

    logger.info(
        "Release finished",
        extra={
            "version": result.version,
            "archive_dir": str(result.archive_dir),
            "manifest_entries": result.manifest_entries,
            "verified_signatures": result.verified_signatures,
        },
    )
    return SUCCESS


def handle_verify(args: argparse.Namespace) -> int:
    """Re-verify the signatures of archives built earlier."""
    exit_code, config, logger = _load_and_configure(args, "verify")
    if exit_code != SUCCESS or config is None:
        return exit_code

    try:
        descriptor = create_descriptor(args.version, args.flavour, config.release.flavours)
    except UsageError as err:
        logger.error("Usage error", extra={"command": "verify", "error": str(err)})
        return USAGE_ERROR

    if descriptor.is_local_build:
        logger.info("Local builds are not signed, nothing to verify")
        return SUCCESS

    from matomo_packager.release.pipeline import verify_release_signatures

    archive_dir = Path(args.project_dir).resolve() / config.release.archive_dir
    runner = CommandRunner(timeout=config.release.command_timeout_seconds)
    try:
        count = verify_release_signatures(descriptor, archive_dir, runner)
    except ReleaseError as err:
        logger.error("Verification failed", extra={"command": "verify", "error": str(err)})
        return FATAL_ERROR

    logger.info("Verification complete", extra={"command": "verify", "verified": count})
    return SUCCESS


def handle_manifest(args: argparse.Namespace) -> int:
    """Regenerate the integrity manifest of an existing tree."""
    exit_code, config, logger = _load_and_configure(args, "manifest")
    if exit_code != SUCCESS or config is None:
        return exit_code

    tree = Path(args.tree)
    if not tree.is_dir():
        logger.error("Tree not found", extra={"command": "manifest", "tree": str(tree)})
        return USAGE_ERROR

    if args.dry_run:
        logger.info("Dry run: would write manifest", extra={"tree": str(tree)})
        return SUCCESS

    from matomo_packager.release.manifests.manifest import write_manifest

    try:
        entries = write_manifest(tree, config.release.manifest_file, config.release.manifest_denylist)
    except (OSError, UnicodeError) as err:
        logger.error("Manifest generation failed", extra={"error": str(err)}, exc_info=True)
        return FATAL_ERROR

    logger.info("Manifest generated", extra={"tree": str(tree), "entries": len(entries)})
    return SUCCESS


def handle_verify_manifest(args: argparse.Namespace) -> int:
    """Check a tree against its manifest."""
    exit_code, config, logger = _load_and_configure(args, "verify-manifest")
    if exit_code != SUCCESS or config is None:
        return exit_code

    tree = Path(args.tree)
    if not tree.is_dir():
        logger.error("Tree not found", extra={"command": "verify-manifest", "tree": str(tree)})
        return USAGE_ERROR

    from matomo_packager.release.manifests.manifest import verify_manifest

    try:
        report = verify_manifest(tree, config.release.manifest_file, config.release.manifest_denylist)
    except (OSError, ValueError) as err:
        logger.error("Manifest verification failed", extra={"error": str(err)})
        return FATAL_ERROR

    if not report.is_valid:
        logger.error(
            "Tree does not match its manifest",
            extra={
                "mismatches": report.mismatches,
                "missing": report.missing_files,
                "unlisted": report.unlisted_files,
            },
        )
        return FATAL_ERROR

    logger.info("Tree matches its manifest", extra={"checked": report.checked_count})
    return SUCCESS


def handle_check_env(args: argparse.Namespace) -> int:
    """Report which required tools are available."""
    exit_code, config, logger = _load_and_configure(args, "check-env")
    if exit_code != SUCCESS or config is None:
        return exit_code

    from matomo_packager.release.environment.validator import validate_environment

    checks = validate_environment(config.release.required_executables)
    for check in checks:
        logger.info(
            "Tool",
            extra={"check": check.name, "passed": check.passed, "value": check.value},
        )

    if not all(check.passed for check in checks):
        return FATAL_ERROR
    return SUCCESS
