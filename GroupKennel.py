#!/usr/bin/env python3
# ================================================================
# Tool     : GroupKennel
# Purpose  : Entra ID group governance assessment (read-only)
# Notes    : "Every group needs a good home (or a tidy exit)."
# ================================================================

import argparse
import sys

from groupkennel.core.config import fncInitConfig, fncApplyCliOverrides, fncGetProviderConfig, fncIsDebug
from groupkennel.core.errors import DirectoryUnavailableError, GraphAuthError
from groupkennel.core.utils import fncPrintMessage, fncSetDebug, fncDisplayBanner, fncBlurb, fncMask
from groupkennel.core.module_loader import fncRunModule, fncRunAllModules
from groupkennel.core.exports import (
    fncExportList,
    fncExportSingleModule,
    fncExportMultiModule,
)

VERSION = "v1.0"


# ================================================================
# Function: fncParseArguments
# Purpose  : Define and parse command-line arguments for GroupKennel
# Notes    : Assessment flags override ~/.groupkennel/config.json
# ================================================================
def fncParseArguments(argv=None):
    parser = argparse.ArgumentParser(
        prog="GroupKennel",
        description="GroupKennel — Entra group classification, governance and activity review"
    )

    parser.add_argument(
        "provider",
        choices=["entra"],
        help="Directory to assess"
    )

    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        "--scan",
        help="Name of module to execute (e.g., group_inventory, group_activity)"
    )
    group.add_argument(
        "--run-all",
        action="store_true",
        help="Run all available modules for the selected provider"
    )

    parser.add_argument(
        "--skip",
        help="Comma-separated module names to skip with --run-all",
        default=""
    )

    parser.add_argument(
        "--parallel",
        type=int,
        default=None,
        help="Worker threads for per-group fetches and --run-all modules (default: config, 1 = sequential)"
    )

    parser.add_argument(
        "--export",
        nargs="*",
        metavar="FMT[,FMT...]",
        help="Export formats: html, csv, json. Example: --export html,csv json",
        default=None
    )

    parser.add_argument(
        "--inactive-days",
        type=int,
        default=None,
        help="Days without activity before a group counts as inactive (default: config, 90)"
    )

    parser.add_argument(
        "--include-guests",
        action="store_true",
        help="Enumerate members of every group to count guests (slow on large tenants)"
    )

    parser.add_argument(
        "--no-audit",
        action="store_true",
        help="Do not use the directory audit log as an activity source"
    )

    parser.add_argument(
        "--no-member-sample",
        action="store_true",
        help="Skip member sign-in checks for the most idle groups"
    )

    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.json (default: ~/.groupkennel/config.json)"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable verbose debug output"
    )

    return parser.parse_args(argv)


# ================================================================
# Function: fncInitClient
# Purpose  : Build the read-only Graph client from config
# Notes    : Missing credentials are prompted for by GraphClient
# ================================================================
def fncInitClient(provider: str, cfg: dict):
    if provider != "entra":
        fncPrintMessage(f"Unsupported provider: {provider}", "error")
        return None

    from groupkennel.handlers.graph.client import GraphClient, DEFAULT_AUTHORITY

    entra_cfg = fncGetProviderConfig(cfg, "entra")
    tenant_id = entra_cfg.get("tenant_id")
    client_id = entra_cfg.get("client_id")
    client_secret = entra_cfg.get("client_secret")

    if not all([tenant_id, client_id, client_secret]):
        fncPrintMessage("Missing Entra credentials — dropping into interactive mode…", "warn")
    else:
        fncPrintMessage(f"Tenant {tenant_id} / client {fncMask(client_id)}", "debug")

    return GraphClient(
        tenant_id=tenant_id,
        client_id=client_id,
        client_secret=client_secret,
        authority=entra_cfg.get("authority") or DEFAULT_AUTHORITY,
    )


# ================================================================
# Function: main
# Purpose  : Main entry point for GroupKennel execution
# Notes    : Returns the process exit code
# ================================================================
def main(argv=None) -> int:
    args = fncParseArguments(argv)

    cfg = fncInitConfig(args.config)
    cfg = fncApplyCliOverrides(cfg, args)
    fncSetDebug(fncIsDebug(cfg))
    args.cfg = cfg

    fncDisplayBanner(VERSION)
    fncBlurb(args.provider)
    fncPrintMessage(f"Opening the kennel on {args.provider.upper()}...", "info")
    fncPrintMessage("Debug output enabled.", "debug")

    try:
        client = fncInitClient(args.provider, cfg)
        if not client:
            fncPrintMessage("Unable to continue without valid provider client.", "error")
            return 1

        export_formats = fncExportList(args.export)

        if args.run_all:
            if args.parallel and args.parallel > 4:
                fncPrintMessage("Warning: --parallel > 4 may hit Microsoft Graph throttling.", "warn")

            skip_list = [m.strip() for m in args.skip.split(",") if m.strip()]
            results = fncRunAllModules(args.provider, client, args, skip_list=skip_list)

            if export_formats:
                fncExportMultiModule(results, export_formats)

            failed = [name for name, res in results.items() if res is None or (isinstance(res, dict) and "error" in res)]
            if failed:
                fncPrintMessage(f"Module(s) did not complete: {', '.join(failed)}", "error")
                return 1
        else:
            fncPrintMessage(f"Running scan module: {args.scan}", "info")
            result = fncRunModule(args.provider, args.scan, client, args)
            if result is None or (isinstance(result, dict) and "error" in result):
                fncPrintMessage(f"Module {args.scan} did not complete.", "error")
                return 1

            if export_formats and isinstance(result, dict):
                fncExportSingleModule(args.scan, result, export_formats)

    except GraphAuthError as ex:
        fncPrintMessage(f"Authentication failed: {ex}", "error")
        return 2
    except DirectoryUnavailableError as ex:
        fncPrintMessage(f"Group listing failed, nothing to assess: {ex}", "error")
        return 1

    fncPrintMessage("Assessment complete. Every group accounted for.", "success")
    return 0


if __name__ == "__main__":
    sys.exit(main())
