#!/usr/bin/env python3
"""Entry point for the Arc relayer.

Commands:
    relay <tx-hash>    Relay the message emitted by one source transaction
    submit <file>      Submit a private transfer or withdraw request (JSON)
    watch              Watch the source bridge and relay every transfer
    info               Show the relayer address, balance and pool state
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv
from web3 import Web3


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


logger = logging.getLogger(__name__)

from arc_relayer.config import PrivacyPoolConfig, RelayerConfig, load_private_key  # noqa: E402
from arc_relayer.exceptions import AttestationTimeout, InvalidRelayRequest, SourceTxNotFound  # noqa: E402
from arc_relayer.models import RelayerIdentity  # noqa: E402
from arc_relayer.orchestrator import RelayOrchestrator  # noqa: E402
from arc_relayer.relayer import ArcRelayer  # noqa: E402
from arc_relayer.submitter import TxSubmitter  # noqa: E402
from arc_relayer.validator import parse_relay_request  # noqa: E402

MIN_BALANCE = Web3.to_wei(0.01, "ether")


def build_parser() -> argparse.ArgumentParser:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Arc Relayer - relay cross-chain messages and private transactions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  SOURCE_RPC_URL                   - RPC endpoint for the source chain (relay/watch)
  SOURCE_MESSAGE_TRANSMITTER       - MessageTransmitter on the source chain (relay/watch)
  SOURCE_BRIDGE_ADDRESS            - Privacy bridge to watch (watch only)
  DESTINATION_RPC_URL              - RPC endpoint for the destination chain (relay/watch)
  DESTINATION_MESSAGE_TRANSMITTER  - MessageTransmitter on the destination chain (relay/watch)
  POOL_CONTRACT_ADDRESS            - Privacy pool (submit/info only)
  POOL_RPC_URL                     - RPC endpoint for the pool chain (default: SOURCE_RPC_URL)
  RELAYER_PRIVATE_KEY              - Relayer signing key
  ATTESTATION_API_URL              - Attestation service (default: Circle sandbox)
  LOG_LEVEL                        - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    relay_parser = commands.add_parser("relay", help="Relay the message of one source transaction")
    relay_parser.add_argument("tx_hash", help="Source chain transaction hash")

    submit_parser = commands.add_parser("submit", help="Submit a private transfer or withdraw")
    submit_parser.add_argument("request_file", help="JSON relay request ('-' for stdin)")

    commands.add_parser("watch", help="Watch the source bridge and relay transfers")
    commands.add_parser("info", help="Show relayer address, balance and pool state")

    return parser


async def run_relay(config: RelayerConfig, tx_hash: str) -> int:
    identity = RelayerIdentity.from_private_key(config.private_key)
    orchestrator = RelayOrchestrator.from_config(config, identity)

    outcome = await orchestrator.relay(tx_hash)
    if outcome is None:
        logger.info("No cross-chain message in this transaction, nothing relayed")
        return 0

    print(json.dumps(outcome.to_dict(), indent=2))
    return 0 if outcome.succeeded else 1


def load_pool_settings() -> tuple[PrivacyPoolConfig, str]:
    """Load what the pool commands need: the pool section and the signing key.

    Raises:
        ValueError: If POOL_CONTRACT_ADDRESS is unset or a value is invalid
    """
    pool_config = PrivacyPoolConfig.from_env()
    if pool_config is None:
        raise ValueError("POOL_CONTRACT_ADDRESS is required for this command")
    return pool_config, load_private_key()


async def run_submit(pool_config: PrivacyPoolConfig, private_key: str, request_file: str) -> int:
    if request_file == "-":
        payload = json.load(sys.stdin)
    else:
        with open(request_file) as f:
            payload = json.load(f)

    req = parse_relay_request(payload)

    identity = RelayerIdentity.from_private_key(private_key)
    submitter = TxSubmitter.from_config(pool_config, identity)

    outcome = await submitter.submit(req)
    print(json.dumps(outcome.to_dict(), indent=2))
    return 0 if outcome.succeeded else 1


async def run_info(pool_config: PrivacyPoolConfig, private_key: str) -> int:
    identity = RelayerIdentity.from_private_key(private_key)
    submitter = TxSubmitter.from_config(pool_config, identity)

    balance = await submitter.get_balance()
    info = {
        "relayer": submitter.get_address(),
        "balance": str(Web3.from_wei(balance, "ether")),
        "contract": submitter.contract_address,
        "merkle_root": await submitter.get_merkle_root(),
        "gas_price_gwei": str(Web3.from_wei(await submitter.get_gas_price(), "gwei")),
    }
    print(json.dumps(info, indent=2))

    if balance < MIN_BALANCE:
        logger.warning("Relayer balance is low, please fund the relayer")
    return 0


async def main() -> None:
    """Main entry point for the Arc relayer.

    Raises:
        SystemExit: With the command's exit status
    """
    args: argparse.Namespace = build_parser().parse_args()

    setup_logging(args.log_level)

    # Environment variables win over values in .env
    load_dotenv()

    relayer: ArcRelayer | None = None
    try:
        match args.command:
            case "relay":
                config: RelayerConfig = RelayerConfig.from_env()
                logger.info("Configuration loaded successfully")
                exit_code = await run_relay(config, args.tx_hash)
            case "submit":
                pool_config, private_key = load_pool_settings()
                exit_code = await run_submit(pool_config, private_key, args.request_file)
            case "info":
                pool_config, private_key = load_pool_settings()
                exit_code = await run_info(pool_config, private_key)
            case "watch":
                config = RelayerConfig.from_env()
                config.log_config()
                relayer = ArcRelayer(config)
                await relayer.run()
                exit_code = 0

    except json.JSONDecodeError as e:
        logger.error(f"Relay request is not valid JSON: {e}")
        sys.exit(2)

    except InvalidRelayRequest as e:
        logger.error(f"Invalid relay request: {e}")
        sys.exit(2)

    except (SourceTxNotFound, AttestationTimeout) as e:
        logger.error(str(e))
        sys.exit(1)

    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - RELAYER_PRIVATE_KEY")
        logger.error("  - SOURCE_RPC_URL, SOURCE_MESSAGE_TRANSMITTER (relay/watch)")
        logger.error("  - DESTINATION_RPC_URL, DESTINATION_MESSAGE_TRANSMITTER (relay/watch)")
        logger.error("  - POOL_CONTRACT_ADDRESS, POOL_RPC_URL (submit/info), SOURCE_BRIDGE_ADDRESS (watch)")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
        if relayer:
            relayer.stop()
        sys.exit(0)

    except Exception as e:
        logger.error(f"Fatal Error: {e}", exc_info=True)
        sys.exit(1)

    sys.exit(exit_code)


if __name__ == "__main__":
    asyncio.run(main())
