#!/usr/bin/env python3
"""
Run the Prompt Vault database CLI: python -m database --init | --status | --ingest FILE...
"""

import sys
from .init_database import main

if __name__ == '__main__':
    sys.exit(main())
