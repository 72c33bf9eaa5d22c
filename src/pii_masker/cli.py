"""CLI interface for pii-masker.

Usage:
    # Pattern pass (stdin: text, stdout: snapshot JSON)
    echo 'Mail a@b.com or call 555-123-4567' | python -m pii_masker.cli detect

    # Semantic pass with fallback
    echo 'Bob says hi' | python -m pii_masker.cli scan

    # Replay stdin as a chunked stream, one snapshot per line
    cat reply.txt | python -m pii_masker.cli stream --chunk-size 16

Options can also come from a YAML file (--config) or PII_MASKER_* env vars.
"""

from __future__ import annotations
import argparse
import asyncio
import json
import logging
import sys
from typing import AsyncIterator

from .config import create_masker, load_from_env, load_from_yaml
from .masker import Masker
from .reconciler import Reconciler, reconcile_stream
from .types import Snapshot


def _build_config(args: argparse.Namespace) -> dict:
    config = load_from_yaml(args.config) if args.config else load_from_env()
    if args.extractor:
        config["extractor"] = args.extractor
    if args.threshold:
        config["pattern_scan_threshold"] = args.threshold
    if args.timeout_ms:
        config["extractor_timeout_ms"] = args.timeout_ms
    if args.offset_encoding:
        config["offset_encoding"] = args.offset_encoding
    if args.allow_list:
        config["allow_list"] = set(args.allow_list.split(","))
    return config


def _write(snapshot: Snapshot, text: str, masker: Masker) -> None:
    json.dump(
        snapshot.to_dict(text, offset_encoding=masker.config.offset_encoding),
        sys.stdout, ensure_ascii=False,
    )
    sys.stdout.write("\n")
    sys.stdout.flush()


def cmd_detect(args: argparse.Namespace, masker: Masker) -> None:
    """Pattern pass over stdin."""
    text = sys.stdin.read()
    _write(Snapshot(tuple(masker.quick_scan(text)), len(text)), text, masker)


def cmd_scan(args: argparse.Namespace, masker: Masker) -> None:
    """Semantic pass (falls back to patterns + names) over stdin."""
    text = sys.stdin.read()
    ranges = asyncio.run(masker.scan(text))
    _write(Snapshot(tuple(ranges), len(text), final=True), text, masker)


async def _chunks(text: str, size: int, delay: float) -> AsyncIterator[str]:
    for i in range(0, len(text), size):
        if delay:
            await asyncio.sleep(delay)
        yield text[i:i + size]


def cmd_stream(args: argparse.Namespace, masker: Masker) -> None:
    """Feed stdin through a reconciler in fixed-size chunks."""
    text = sys.stdin.read()

    async def run() -> None:
        reconciler = Reconciler(masker)
        async for snapshot in reconcile_stream(_chunks(text, args.chunk_size, args.delay), reconciler):
            _write(snapshot, text, masker)

    asyncio.run(run())


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="pii_masker",
        description="Incremental PII mask detection",
    )
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("--extractor", choices=["openai", "presidio", "none"],
                        help="Semantic extractor backend")
    parser.add_argument("--threshold", type=int, help="PATTERN_SCAN_THRESHOLD")
    parser.add_argument("--timeout-ms", type=int, help="EXTRACTOR_TIMEOUT_MS")
    parser.add_argument("--offset-encoding", choices=["codepoint", "utf-16"])
    parser.add_argument("--allow-list", default="", help="Comma-separated values to never mask")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (stderr)")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("detect", help="Pattern pass on stdin")
    sub.add_parser("scan", help="Semantic pass on stdin")
    stream = sub.add_parser("stream", help="Simulate a streamed response from stdin")
    stream.add_argument("--chunk-size", type=int, default=8)
    stream.add_argument("--delay", type=float, default=0.0, help="Seconds between chunks")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    masker = create_masker(_build_config(args))
    cmds = {
        "detect": cmd_detect,
        "scan": cmd_scan,
        "stream": cmd_stream,
    }
    cmds[args.command](args, masker)


if __name__ == "__main__":
    main()
