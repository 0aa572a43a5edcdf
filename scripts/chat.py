#!/usr/bin/env python3
"""Interactive chat with the x402 tool market (same as `x402-market-chat`)."""

from x402_market.chat import main

if __name__ == "__main__":
    main()
