#!/usr/bin/env python3
"""
Main launcher for Clatter.

Simple entry point that starts the typewriter sound engine.
"""

from typewriter import main
import asyncio
import sys


def run():
    return asyncio.run(main())


if __name__ == "__main__":
    sys.exit(run())
