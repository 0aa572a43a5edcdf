"""Interactive chat with the x402 tool market."""

import argparse
import asyncio
import logging
import os
import sys

from .config import ClientConfig
from .context import GatewayContext
from .errors import ConfigurationError
from .market_client import MarketClient
from .metrics import init_metrics
from .orchestrator import ProgressEvent, ToolOrchestrator
from .reasoning import BedrockReasoningEngine
from .tracing import init_tracing


def print_progress(event: ProgressEvent) -> None:
    print(f"  [{event.step}] {event.message}", flush=True)


async def chat(config: ClientConfig, quiet: bool = False) -> None:
    context = GatewayContext(config)
    try:
        if not await context.initialize():
            print("Warning: no wallet configured, paid tools will fail.\n")
    except ConfigurationError as e:
        print(f"Error: {e}")
        return

    orchestrator = ToolOrchestrator(
        context,
        MarketClient(config.marketplace_url, timeout_seconds=config.request_timeout_seconds),
        BedrockReasoningEngine.from_config(config),
        sink=None if quiet else print_progress,
    )

    print("=" * 60)
    print("x402 Tool Market - Interactive Chat")
    print(f"Marketplace: {config.marketplace_url}")
    if context.address:
        print(f"Wallet: {context.address}")
        balance = await context.balance()
        if balance is not None:
            print(f"Balance: {balance:.2f} USDC")
    print("=" * 60)
    print("Type 'quit' to exit\n")

    while True:
        try:
            user_input = (await asyncio.to_thread(input, "You: ")).strip()
        except (KeyboardInterrupt, EOFError):
            print("\nGoodbye!")
            break
        if user_input.lower() in ["quit", "exit", "q"]:
            print("Goodbye!")
            break
        if not user_input:
            continue

        session = await orchestrator.run(user_input)
        print(f"Agent: {session.render()}")
        if session.cost:
            print(f"  (paid {session.cost} USDC for {session.tool_name})")
            balance = await context.balance()
            if balance is not None:
                print(f"  (balance: {balance:.2f} USDC)")
        print()


def main() -> None:
    parser = argparse.ArgumentParser(description="Interactive chat with the x402 tool market")
    parser.add_argument(
        "--marketplace-url",
        default=None,
        help="Marketplace base URL (default: MARKETPLACE_URL env var or http://localhost:3000)",
    )
    parser.add_argument("--quiet", action="store_true", help="Hide payment progress steps")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )

    config = ClientConfig.from_env()
    if args.marketplace_url:
        config.marketplace_url = args.marketplace_url

    # EMF lines would interleave with the conversation on stdout
    init_metrics(service_name="x402-market-chat", enabled=os.getenv("METRICS_ENABLED", "false").lower() == "true")
    init_tracing(
        service_name="x402-market-chat",
        otlp_endpoint=config.otel_endpoint or None,
        enable_console_export=config.otel_console_export,
    )

    try:
        asyncio.run(chat(config, quiet=args.quiet))
    except KeyboardInterrupt:
        print("\nGoodbye!")


if __name__ == "__main__":
    main()
