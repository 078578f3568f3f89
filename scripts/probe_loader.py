#!/usr/bin/env python3
"""Run one launch of the drivenest loader against live endpoints.

Feeds a conversion payload (and optionally a deferred deep link) into the
controller, answers the permission prompt if one is raised, and prints
the settled snapshot plus what was persisted.

Usage
-----
Set environment variables and run::

    export DRIVENEST_DEV_KEY="..."
    export DRIVENEST_STORE_ID="1234567890"
    export DRIVENEST_BUNDLE_ID="com.example.app"
    export DRIVENEST_CONFIG_URL="https://config.example.com/config.php"
    python scripts/probe_loader.py --attribution '{"af_status": "Non-organic"}'

Options::

    --store FILE         JSON state file (default: ./drivenest-state.json)
    --attribution JSON   Conversion payload delivered by the attribution SDK
    --deep-link JSON     Deferred deep link payload
    --permission MODE    grant | deny | defer (default: defer)
    --timeout SECONDS    How long to wait for the phase to settle
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

# Allow running from the repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from drivenest import ContentLoader, DrivePhase, JsonFileStore, LoaderConfig  # noqa: E402


def _json_arg(raw: str | None) -> dict[str, Any] | None:
    if raw is None:
        return None
    value = json.loads(raw)
    if not isinstance(value, dict):
        raise SystemExit("payload arguments must be JSON objects")
    return value


async def main() -> None:
    parser = argparse.ArgumentParser(description="Run one drivenest launch and print the outcome.")
    parser.add_argument("--store", default="drivenest-state.json", help="JSON state file")
    parser.add_argument("--attribution", help="Conversion payload as a JSON object")
    parser.add_argument("--deep-link", help="Deferred deep link payload as a JSON object")
    parser.add_argument("--permission", choices=("grant", "deny", "defer"), default="defer")
    parser.add_argument("--timeout", type=float, default=30.0)
    parser.add_argument("--no-connectivity", action="store_true", help="Disable the reachability monitor")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    else:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    overrides: dict[str, Any] = {}
    if args.no_connectivity:
        overrides["connectivity_enabled"] = False
    config = LoaderConfig.from_env(**overrides)

    attribution = _json_arg(args.attribution)
    deep_link = _json_arg(args.deep_link)

    async with ContentLoader(config, JsonFileStore(args.store)) as loader:
        if deep_link is not None:
            loader.on_deep_link(deep_link)
        if attribution is not None:
            loader.on_attribution(attribution)

        snapshot = await loader.wait_until_settled(args.timeout)
        if snapshot.awaiting_permission:
            print("permission prompt raised; answering:", args.permission)
            loader.answer_permission(args.permission == "grant", system_denied=args.permission == "deny")
            snapshot = await loader.controller.wait_for(
                lambda s: not s.awaiting_permission and s.phase is not DrivePhase.IGNITION,
                args.timeout,
            )

        print(f"phase       : {snapshot.phase}")
        print(f"content_url : {snapshot.content_url}")
        print("stored      :")
        print(json.dumps(loader.controller.stored.to_values(), indent=2, sort_keys=True))


if __name__ == "__main__":
    asyncio.run(main())
