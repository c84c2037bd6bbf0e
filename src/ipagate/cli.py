from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Any

from .errors import GateError, StartupError
from .pipeline import UploadPipeline
from .settings import Settings


def _settings_from_args(args: argparse.Namespace) -> Settings:
    overrides: dict[str, Any] = {}
    for field in ("appid", "data_dir", "host", "port"):
        value = getattr(args, field, None)
        if value is not None:
            overrides[field] = value
    if getattr(args, "debug", False):
        overrides["debug"] = True
    return Settings(**overrides)


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def cmd_serve(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    _configure_logging(settings.debug)
    from .api.main import create_app
    try:
        app = create_app(settings)
    except StartupError as e:
        print(f"ipagate: {e}", file=sys.stderr)
        return 1
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="debug" if settings.debug else "info")
    return 0


def cmd_check(args: argparse.Namespace) -> int:
    """Inspect a local archive without storing it."""
    settings = _settings_from_args(args)
    _configure_logging(settings.debug)
    pipeline = UploadPipeline(settings)
    try:
        report = pipeline.inspect(Path(args.archive))
    except GateError as e:
        print(f"REJECTED ({e.stage.value}): {e}")
        return 2
    if args.json:
        print(report.model_dump_json(indent=2))
    else:
        for d in report.decisions:
            print(f"{d.member}: OK ({d.actual})")
        print(f"ACCEPTED: {len(report.decisions)} manifest(s) checked")
    return 0


def cmd_put(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    _configure_logging(settings.debug)
    try:
        settings.require_data_dir()
    except StartupError as e:
        print(f"ipagate: {e}", file=sys.stderr)
        return 1
    pipeline = UploadPipeline(settings)
    try:
        with open(args.archive, "rb") as fh:
            outcome = pipeline.process(fh)
    except GateError as e:
        print(f"REJECTED ({e.stage.value}): {e}", file=sys.stderr)
        return 1 if e.status_code >= 500 else 2
    print(outcome.path)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ipagate",
        description="Content-addressed IPA upload gate with provisioning profile checks",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--appid", help="Expected Entitlements.application-identifier")
    common.add_argument("--debug", action="store_true", help="Log stored paths and decoded manifests")

    p_serve = sub.add_parser("serve", parents=[common], help="Run the HTTP upload service")
    p_serve.add_argument("--data-dir", dest="data_dir", type=Path, help="data directory")
    p_serve.add_argument("--host")
    p_serve.add_argument("--port", type=int)
    p_serve.set_defaults(func=cmd_serve)

    p_check = sub.add_parser("check", parents=[common], help="Check a local archive without storing it")
    p_check.add_argument("archive")
    p_check.add_argument("--json", action="store_true", help="Print the inspection report as JSON")
    p_check.set_defaults(func=cmd_check)

    p_put = sub.add_parser("put", parents=[common], help="Store and check a local archive like an upload")
    p_put.add_argument("archive")
    p_put.add_argument("--data-dir", dest="data_dir", type=Path, help="data directory")
    p_put.set_defaults(func=cmd_put)
    return p


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
