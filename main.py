#!/usr/bin/env python3
"""Entry point for the Reactive flow tracker.

Verifies a single cross-chain automation and prints the resulting flow
status as JSON. Configuration comes from the environment (optionally a
``.env`` file); the flow itself is described on the command line.
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv


# Configure logging before any other imports create loggers
def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


# Get logger for this module
logger = logging.getLogger(__name__)

from reactive_flow_tracker.config import TrackerConfig
from reactive_flow_tracker.errors import ConfigurationError
from reactive_flow_tracker.flow_tracker import track_flow
from reactive_flow_tracker.models import FlowRequest
from reactive_flow_tracker.utils.event_signature import resolve_topic

EXIT_INCOMPLETE = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Reactive Flow Tracker - verify a cross-chain automation end to end",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  CHAIN_CONFIG_PATH    - JSON file with chain configurations (default: built-in explorers)
  ETHERSCAN_API_KEY    - API key for Etherscan explorers
  POLYGONSCAN_API_KEY  - API key for Polygonscan explorers
  REACTIVE_RPC_URL     - Reactive Network RPC (default: https://kopli-rpc.rkt.ink)
  SEARCH_WINDOW        - Reconciliation window in seconds (default: 1000)
  SEARCH_BATCH_SIZE    - Transactions per history batch (default: 100)
  STAGE_TIMEOUT        - Per-stage timeout in seconds (default: 30)
  SESSION_DEADLINE     - Whole-flow deadline in seconds (default: 120)
  REQUEST_TIMEOUT      - HTTP request timeout in seconds (default: 30)
  RETRY_COUNT          - Retries for transient network errors (default: 3)
  RETRY_BACKOFF        - Base delay in seconds between retries (default: 0.5)
  LOG_LEVEL            - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument("--tx", required=True, help="Origin transaction hash")
    parser.add_argument("--watched", required=True, help="Reactive contract address watching the origin")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--topic", help="Target event topic (0x + 64 hex)")
    target.add_argument("--event", help="Canonical target event signature, e.g. 'Ping(address,uint256)'")
    parser.add_argument("--origin-chain", type=int, required=True, help="Origin chain ID")
    parser.add_argument("--destination-chain", type=int, required=True, help="Destination chain ID")
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    return parser.parse_args(argv)


async def main(argv: list[str] | None = None) -> int:
    """Track one flow and print its status.

    Returns:
        0 when every stage succeeded, 2 when a stage failed, 1 on configuration errors
    """
    load_dotenv()
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = TrackerConfig.from_env()
        config.log_config()

        request = FlowRequest(
            origin_tx_hash=args.tx,
            watched_address=args.watched,
            target_event_signature=args.topic or resolve_topic(args.event),
            origin_chain_id=args.origin_chain,
            destination_chain_id=args.destination_chain,
        )
        status = await track_flow(request, config)

    except ConfigurationError as e:
        logger.error(f"Configuration Error: {e}")
        return 1
    except ValueError as e:
        logger.error(f"Invalid flow request: {e}")
        return 1

    print(json.dumps(status.to_dict(), indent=2))

    if status.is_complete:
        logger.info("All stages verified")
        return 0

    logger.warning(f"Flow incomplete, failed at {status.failed_stage}")
    return EXIT_INCOMPLETE


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
