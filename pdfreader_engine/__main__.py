"""Entry point for running pdfreader_engine as a module.

Usage:
    python -m pdfreader_engine <command> [options]
"""
from .cli import main

if __name__ == "__main__":
    raise SystemExit(main())
