#!/usr/bin/env python3
"""Entry point for running the sync service as a module."""

from services.sync.daemon import main

if __name__ == "__main__":
    main()
