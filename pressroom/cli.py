#!/usr/bin/env python3
"""Command-line interface for detecting, parsing and ingesting media-query emails."""

import asyncio
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional
import structlog

from .config.settings import get_settings
from .database.engine import close_database_engine, get_session_factory, init_models
from .ingestion.detector import describe_source_type, detect_email_source
from .ingestion.models import InboundEmail
from .ingestion.pipeline import IngestionPipeline
from .services.llm import build_llm_extractor

logger = structlog.get_logger(__name__)

HEADER_FIELDS = {"from": "from", "subject": "subject", "message-id": "message_id", "to": "to"}


def read_email_file(path: str) -> Dict[str, Any]:
    """Read an email text file: optional header lines, a blank line, then the body.

    Files that do not start with a recognised header are treated as body only.
    """
    text = Path(path).read_text(encoding="utf-8")
    lines = text.splitlines()
    headers: Dict[str, Any] = {}

    index = 0
    while index < len(lines):
        line = lines[index]
        if not line.strip():
            if headers:
                index += 1
            break
        name, sep, value = line.partition(":")
        key = HEADER_FIELDS.get(name.strip().lower())
        if not sep or key is None:
            break
        headers[key] = value.strip()
        index += 1

    if not headers:
        index = 0

    return {
        "from": headers.get("from", ""),
        "subject": headers.get("subject", ""),
        "to": headers.get("to"),
        "message_id": headers.get("message_id"),
        "body_text": "\n".join(lines[index:]),
    }


def _print_json(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, default=str))


def run_detect(path: str) -> None:
    email = read_email_file(path)
    detection = detect_email_source(email["subject"], email["body_text"], email["from"])
    _print_json({
        "detection": detection.to_dict(),
        "source_description": describe_source_type(detection.source_type),
    })


async def run_parse(path: str, use_llm: bool = False) -> None:
    """Dry-run detection and parsing; nothing is stored."""
    email = read_email_file(path)
    extractor = build_llm_extractor(get_settings().llm) if use_llm else None
    if use_llm and extractor is None:
        logger.warning("LLM requested but no provider is configured")

    # Dry runs never open a session.
    pipeline = IngestionPipeline(None, settings=get_settings().ingestion, llm_extractor=extractor)
    result = await pipeline.dry_run(email["subject"], email["body_text"], email["from"])
    _print_json(result)


async def run_ingest(path: str, tenant_id: str, message_id: Optional[str] = None) -> bool:
    """Run the full pipeline against the configured database."""
    email = read_email_file(path)
    if message_id:
        email["message_id"] = message_id

    settings = get_settings()
    try:
        if settings.database.create_all:
            await init_models()

        pipeline = IngestionPipeline(
            await get_session_factory(),
            settings=settings.ingestion,
            llm_extractor=build_llm_extractor(settings.llm),
        )
        result = await pipeline.process_webhook_email(tenant_id, InboundEmail.model_validate(email))
    finally:
        await close_database_engine()

    _print_json({"success": result.success, "data": result.to_dict()})
    return result.success


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Pressroom media-query email CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show which email source a file looks like
  pressroom detect query.txt

  # Parse without storing, allowing the LLM fallback
  pressroom parse query.txt --llm

  # Ingest into the configured database for an agency
  pressroom ingest query.txt --tenant agency_1 --message-id msg-123
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Command")

    detect_parser = subparsers.add_parser("detect", help="Detect the email source type")
    detect_parser.add_argument("path", help="Path to email text file")

    parse_parser = subparsers.add_parser("parse", help="Detect and parse without storing")
    parse_parser.add_argument("path", help="Path to email text file")
    parse_parser.add_argument("--llm", action="store_true", help="Enable the configured LLM backend")

    ingest_parser = subparsers.add_parser("ingest", help="Ingest an email into the database")
    ingest_parser.add_argument("path", help="Path to email text file")
    ingest_parser.add_argument("--tenant", required=True, help="Agency (tenant) ID")
    ingest_parser.add_argument("--message-id", default=None, help="Message id used for idempotency")

    parser.add_argument("--log-level", default="WARNING",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Log level")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(level=getattr(logging, args.log_level), stream=sys.stderr)

    if not Path(args.path).is_file():
        logger.error("Email file does not exist", path=args.path)
        sys.exit(1)

    try:
        if args.command == "detect":
            run_detect(args.path)
        elif args.command == "parse":
            asyncio.run(run_parse(args.path, use_llm=args.llm))
        elif args.command == "ingest":
            if not asyncio.run(run_ingest(args.path, args.tenant, args.message_id)):
                sys.exit(1)
        else:
            logger.error("Unknown command", command=args.command)
            sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(0)
    except Exception as exc:
        logger.error("Unexpected error", exc_info=exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
