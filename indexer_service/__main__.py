"""
Entry point for running the service as a module.

Usage:
    python -m indexer_service start --help
"""

from indexer_service.cli import main

if __name__ == "__main__":
    main()
