from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from common.config import AppConfig, load_config
from common.io_utils import read_json
from common.logging_utils import configure_logging, get_logger
from common.models import DeviceFingerprint
from devices.history import FingerprintHistory
from devices.store import KeyValueStore, StoreError, build_store
from devices.trust import DeviceTrustManager
from risk.behavior import StaticBehaviorProvider
from risk.risk_rules import analyze


logger = get_logger(__name__)


def _print_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, indent=2, sort_keys=True) + "\n")


def _history(cfg: AppConfig, store: KeyValueStore) -> FingerprintHistory:
    return FingerprintHistory(store, max_entries=cfg.history.max_entries, scope=cfg.history.scope)


def _load_fingerprint(path: str) -> DeviceFingerprint:
    try:
        return DeviceFingerprint.model_validate(read_json(path))
    except (OSError, ValueError) as exc:
        # pydantic's ValidationError is a ValueError as well.
        detail = f"{exc.error_count()} validation error(s)" if isinstance(exc, ValidationError) else str(exc)
        raise SystemExit(f"Invalid fingerprint file {path}: {detail}") from exc


def cmd_analyze(args: argparse.Namespace, cfg: AppConfig, store: KeyValueStore) -> int:
    fingerprint = _load_fingerprint(args.fingerprint)
    history = _history(cfg, store)

    previous = history.load(args.identity)
    analysis = analyze(
        fingerprint,
        previous,
        now_ms=args.now_ms,
        cfg=cfg.risk.as_dict(),
        behavior=StaticBehaviorProvider.from_config(cfg.behavior),
    )
    if not args.no_record:
        history.record(fingerprint, args.identity)

    trust = DeviceTrustManager(store)
    out = analysis.to_wire()
    out["visitorId"] = fingerprint.visitor_id
    out["trusted"] = trust.is_trusted(fingerprint.visitor_id)
    _print_json(out)
    return 0


def cmd_trust(args: argparse.Namespace, cfg: AppConfig, store: KeyValueStore) -> int:
    DeviceTrustManager(store).trust(args.visitor_id)
    return 0


def cmd_untrust(args: argparse.Namespace, cfg: AppConfig, store: KeyValueStore) -> int:
    DeviceTrustManager(store).untrust(args.visitor_id)
    return 0


def cmd_devices(args: argparse.Namespace, cfg: AppConfig, store: KeyValueStore) -> int:
    _print_json({"trusted_devices": DeviceTrustManager(store).trusted_devices()})
    return 0


def cmd_history(args: argparse.Namespace, cfg: AppConfig, store: KeyValueStore) -> int:
    entries = _history(cfg, store).load(args.identity)
    _print_json(
        {
            "count": len(entries),
            "visitor_ids": [fp.visitor_id for fp in entries],
        }
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="flowauth", description="FlowAuth device risk scoring")
    ap.add_argument("--config", default=None, help="Path to YAML config (e.g. config/dev.yaml)")
    ap.add_argument("--store-path", default=None, help="Directory for the file store (overrides config)")
    ap.add_argument("--log-level", default=None, help="Log level (overrides FLOWAUTH_LOG_LEVEL)")

    sub = ap.add_subparsers(dest="command", required=True)

    p_analyze = sub.add_parser("analyze", help="Score a fingerprint JSON file against stored history")
    p_analyze.add_argument("fingerprint", help="Path to a fingerprint JSON document")
    p_analyze.add_argument("--identity", default=None, help="History scope identity (scope=identity only)")
    p_analyze.add_argument("--no-record", action="store_true", help="Do not append the fingerprint to history")
    p_analyze.add_argument("--now-ms", type=int, default=None, help="Evaluation time, epoch ms (default: now)")
    p_analyze.set_defaults(func=cmd_analyze)

    p_trust = sub.add_parser("trust", help="Add a visitor id to the trusted devices")
    p_trust.add_argument("visitor_id")
    p_trust.set_defaults(func=cmd_trust)

    p_untrust = sub.add_parser("untrust", help="Remove a visitor id from the trusted devices")
    p_untrust.add_argument("visitor_id")
    p_untrust.set_defaults(func=cmd_untrust)

    p_devices = sub.add_parser("devices", help="List trusted devices")
    p_devices.set_defaults(func=cmd_devices)

    p_history = sub.add_parser("history", help="Show recorded fingerprint history")
    p_history.add_argument("--identity", default=None)
    p_history.set_defaults(func=cmd_history)

    return ap


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    if args.log_level:
        configure_logging(args.log_level)

    try:
        cfg = load_config(args.config)
    except (OSError, ValueError) as exc:
        raise SystemExit(f"Invalid config: {exc}") from exc

    if args.store_path:
        cfg.store.backend = "file"
        cfg.store.path = str(Path(args.store_path))

    try:
        store = build_store(cfg.store)
    except ValueError as exc:
        raise SystemExit(f"Invalid store config: {exc}") from exc

    try:
        return int(args.func(args, cfg, store))
    except StoreError as exc:
        logger.error("store failure: %s", exc)
        raise SystemExit(f"Store failure: {exc}") from exc


if __name__ == "__main__":
    sys.exit(main())
