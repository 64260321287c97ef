"""Command-line interface for Soulscape."""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any

import uvicorn
from pydantic import ValidationError

from soulscape import __version__
from soulscape.config import ConfigError
from soulscape.engine.art import render
from soulscape.engine.evolution import EvolutionError
from soulscape.logging_config import configure_logging, get_logger
from soulscape.model.address import InvalidAddressError, is_address
from soulscape.model.spirit import AttributeVector
from soulscape.services import Services, get_services

logger = get_logger(__name__)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


def _parse_color(value: str) -> int:
    """Accept ``#ff00aa``, ``0xff00aa`` or a decimal integer."""
    text = value.strip().lower()
    if text.startswith("#"):
        return int(text[1:], 16)
    return int(text, 0)


def cmd_serve(parsed: argparse.Namespace) -> int:
    print(f"Starting Soulscape server at http://{parsed.host}:{parsed.port}")
    print("Press Ctrl+C to stop")
    uvicorn.run(
        "soulscape.server.app:app",
        host=parsed.host,
        port=parsed.port,
        reload=parsed.reload,
        log_config=None,
    )
    return 0


def cmd_evolve(parsed: argparse.Namespace, services: Services) -> int:
    """Evolve one address (argument, then TARGET_ADDRESS) or every owner."""
    services.config.validate_for_writes()
    target = parsed.address or os.environ.get("TARGET_ADDRESS")
    if target and is_address(target):
        try:
            result = services.orchestrator.evolve(target)
        except EvolutionError as e:
            logger.error("Evolution failed: %s", str(e), extra={"address": target})
            return 1
        _print_json(result.model_dump(mode="json"))
        return 0
    if target:
        raise InvalidAddressError(f"Invalid address: {target!r}")

    batch = services.batch.evolve_all()
    _print_json(batch.model_dump(mode="json", exclude={"results"}))
    return 0 if batch.failed == 0 else 1


def cmd_owners(parsed: argparse.Namespace, services: Services) -> int:
    owners = services.batch.list_owners()
    _print_json({"count": len(owners), "owners": owners})
    return 0


def cmd_sync(parsed: argparse.Namespace, services: Services) -> int:
    if parsed.from_block is not None:
        to_block = parsed.to_block if parsed.to_block is not None else services.chain.block_number()
        result = services.syncer.sync(parsed.from_block, to_block)
    else:
        result = services.syncer.sync_recent(parsed.blocks)
    _print_json(result.model_dump())
    return 0


def cmd_paint(parsed: argparse.Namespace, services: Services) -> int:
    key = services.config.get_painter_key()
    if key is None:
        raise ConfigError("PAINTER_PRIVATE_KEY is not set")
    tx_hash = services.chain.paint(parsed.token_id, parsed.x, parsed.y, parsed.color, key)
    receipt = services.chain.wait_for_confirmation(tx_hash)
    _print_json({"txHash": receipt.tx_hash, "blockNumber": receipt.block_number})
    return 0


def cmd_render(parsed: argparse.Namespace) -> int:
    vector = AttributeVector.model_validate_json(parsed.vector)
    sys.stdout.write(render(vector, parsed.label) + "\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Argument parser with one subcommand per operation."""
    parser = argparse.ArgumentParser(
        prog="soulscape",
        description="Soulscape - evolving on-chain spirits and a shared graffiti wall",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1", help="Host to bind to (default: 127.0.0.1)")
    serve.add_argument("--port", type=int, default=8000, help="Port to bind to (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Enable auto-reload for development")

    evolve = sub.add_parser("evolve", help="Evolve one address, or every owner")
    evolve.add_argument("address", nargs="?", help="Owner address (default: TARGET_ADDRESS or all)")

    sub.add_parser("owners", help="List spirit owners")

    sync = sub.add_parser("sync", help="Copy recent paint events into the store")
    sync.add_argument("--blocks", type=int, default=None, help="Blocks back from the head")
    sync.add_argument("--from-block", type=int, default=None, help="Explicit start block")
    sync.add_argument("--to-block", type=int, default=None, help="Explicit end block")

    paint = sub.add_parser("paint", help="Paint one pixel with PAINTER_PRIVATE_KEY")
    paint.add_argument("token_id", type=int)
    paint.add_argument("x", type=int)
    paint.add_argument("y", type=int)
    paint.add_argument("color", type=_parse_color, help="#rrggbb, 0xrrggbb or decimal")

    render_cmd = sub.add_parser("render", help="Print the SVG for a vector and label")
    render_cmd.add_argument("vector", help='JSON, e.g. {"aggression": 10, ...}')
    render_cmd.add_argument("label", help='Label, e.g. "Spirit 1"')

    return parser


def main(args: list[str] | None = None) -> int:
    """Run the Soulscape command line.

    Args:
        args: Command-line arguments. If None, uses sys.argv[1:].

    Returns:
        Exit code (0 for success).
    """
    parsed = build_parser().parse_args(args)
    configure_logging()

    if parsed.command == "serve":
        return cmd_serve(parsed)
    if parsed.command == "render":
        try:
            return cmd_render(parsed)
        except ValidationError as e:
            print(f"Invalid vector: {e.errors()[0]['msg']}", file=sys.stderr)
            return 2

    handlers = {
        "evolve": cmd_evolve,
        "owners": cmd_owners,
        "sync": cmd_sync,
        "paint": cmd_paint,
    }
    try:
        return handlers[parsed.command](parsed, get_services())
    except ValidationError as e:
        print(f"Invalid configuration: {e.errors()[0]['msg']}", file=sys.stderr)
        return 2
    except (ConfigError, InvalidAddressError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        logger.exception("Command %s failed", parsed.command)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
