"""
Main entry point for the frontierlab command-line application.
"""

import sys

from frontierlab.presentation.cli.main import main as cli_main


def main():
    """Main application entry point."""
    try:
        return cli_main()
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130


if __name__ == '__main__':
    sys.exit(main())
