"""Command line entry point: ``oairepo serve | purge-tokens | check-config``."""
import argparse
import json
import logging
import os
import sys
from typing import List, Optional

import uvicorn

from oairepo.config import load_settings
from oairepo.logging_config import configure_logging
from oairepo.pmh.errors import ConfigError
from oairepo.store.tokens import ResumptionTokenStore, TokenStoreError

logger = logging.getLogger(__name__)


def cmd_serve(args: argparse.Namespace) -> int:
    # The app module reads its settings from the environment at import time.
    if args.config:
        os.environ["OAI_CONFIG"] = args.config
    logger.info("Starting OAI-PMH server", extra={"host": args.host, "port": args.port})
    uvicorn.run("oairepo.api.main:app", host=args.host, port=args.port, log_level="info")
    return 0


def cmd_purge_tokens(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)
    store = ResumptionTokenStore(settings.token_db, settings.token_expiration_minutes)
    try:
        deleted = store.purge_expired()
    except TokenStoreError as error:
        logger.error("Token purge failed: %s", error)
        return 1
    print(f"Purged {deleted} expired resumption token(s) from {settings.token_db}")
    return 0


def cmd_check_config(args: argparse.Namespace) -> int:
    settings = load_settings(args.config)
    print(json.dumps(settings.model_dump(mode="json"), indent=2, sort_keys=True))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="oairepo", description="OAI-PMH 2.0 repository")
    parser.add_argument("--config", default=None, help="settings YAML (default: $OAI_CONFIG)")
    parser.add_argument("--log-level", default="INFO")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the HTTP server")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    serve.set_defaults(func=cmd_serve)

    purge = sub.add_parser("purge-tokens", help="delete expired resumption tokens")
    purge.set_defaults(func=cmd_purge_tokens)

    check = sub.add_parser("check-config", help="validate and print the effective settings")
    check.set_defaults(func=cmd_check_config)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        return args.func(args)
    except ConfigError as error:
        logger.error("%s", error)
        return 2


if __name__ == "__main__":
    sys.exit(main())
