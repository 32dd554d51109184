"""
gsitrack CLI Entry Point

Allows running the package as a module: python -m gsitrack
"""

from gsitrack.cli import main

if __name__ == "__main__":
    main()
