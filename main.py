"""Entry point for the x402 tool market gateway."""
import logging
import sys

# Configure logging to stdout - do this FIRST
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)],
    force=True
)

from x402_market.server import serve  # noqa: E402

if __name__ == "__main__":
    serve()
