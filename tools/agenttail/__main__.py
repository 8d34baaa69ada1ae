"""
Entry point for running agenttail as a Python module:

    python -m agenttail <agent> [options]
"""

from .cli import main

if __name__ == "__main__":
    main()
