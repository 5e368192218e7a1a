#!/usr/bin/env python3
"""
Pact Stub Server launcher

Runs the pactstub CLI straight from a source checkout.

Examples:
    python3 pact-stub-server.py --file consumer-provider.json --port 8080
    python3 pact-stub-server.py --dir pacts --cors
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / 'src'))

from pactstub.cli import main


if __name__ == '__main__':
    main()
