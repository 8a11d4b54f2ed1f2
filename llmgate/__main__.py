#!/usr/bin/env python3
"""Entry point for llmgate CLI."""

import sys
from llmgate.cli.main import main

if __name__ == "__main__":
    sys.exit(main())
