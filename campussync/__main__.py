"""
Allow running CampusSync as a module: ``python -m campussync``.

This delegates to the CLI entry point so that both
``campussync`` (console script) and ``python -m campussync``
behave identically.
"""

from campussync.cli import main

if __name__ == "__main__":
    main()
