"""
Main CLI entry point for the efficient-frontier engine.
Provides command-line interface for frontier computation and configuration.
"""

import argparse
import os
import sys
from typing import List, Optional

import pandas as pd
import yaml

from ...infrastructure.config.config_manager import initialize_config
from ...infrastructure.logging.logger import get_logger, configure_logging
from ...infrastructure.middleware.error_handler import (
    EXIT_CONFIGURATION, EXIT_OK, ErrorContext, get_error_handler
)
from ...application.services.frontier_service import FrontierService
from ...domain.exceptions import FrontierError


class FrontierCLI:
    """Main CLI application class."""

    def __init__(self):
        """Initialize CLI application."""
        self.config_manager = None
        self.logger = None
        self.service: Optional[FrontierService] = None

    def initialize(self, config_dir: Optional[str] = None, environment: Optional[str] = None) -> None:
        """Initialize the application components."""
        self.config_manager = initialize_config(config_dir, environment)

        logging_config = self.config_manager.get_app_config().logging
        configure_logging({
            'level': logging_config.level,
            'format': logging_config.format,
            'file_path': logging_config.file_path,
            'structured_file_path': logging_config.structured_file_path,
            'max_file_size': logging_config.max_file_size,
            'backup_count': logging_config.backup_count,
            'console_output': logging_config.console_output
        })

        self.logger = get_logger(__name__)
        self.service = FrontierService(self.config_manager)
        self.logger.debug("Frontier CLI initialized", environment=self.config_manager.environment)

    def create_parser(self) -> argparse.ArgumentParser:
        """Create command line argument parser."""
        parser = argparse.ArgumentParser(
            prog="frontierlab",
            description="Constrained portfolio efficient frontiers",
            formatter_class=argparse.RawDescriptionHelpFormatter
        )

        parser.add_argument(
            '--config-dir',
            type=str,
            help='Configuration directory path'
        )

        parser.add_argument(
            '--environment',
            type=str,
            help='Environment to run in (selects <environment>.yaml)'
        )

        subparsers = parser.add_subparsers(dest='command', help='Available commands')

        # Config command
        config_parser = subparsers.add_parser('config', help='Configuration management')
        config_parser.add_argument('action', choices=['show', 'validate'], help='Config action')

        # Frontier command
        frontier_parser = subparsers.add_parser('frontier', help='Compute an efficient frontier')
        self._add_frontier_arguments(frontier_parser)
        frontier_parser.add_argument('--spec', required=True, help='Portfolio specification YAML file')
        frontier_parser.add_argument('--weights', action='store_true',
                                     help='Print the weight path instead of the risk/return table')
        frontier_parser.add_argument('--by-groups', action='store_true',
                                     help='Add group weight columns (implies --weights)')

        # Overlay command
        overlay_parser = subparsers.add_parser('overlay', help='Compare frontiers of several specifications')
        self._add_frontier_arguments(overlay_parser)
        overlay_parser.add_argument('--spec', required=True, action='append',
                                    help='Portfolio specification YAML file (repeat per portfolio)')

        return parser

    @staticmethod
    def _add_frontier_arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument('--returns', required=True, help='Returns CSV (first column is the index)')
        parser.add_argument('--method', choices=['mean-var', 'mean-ES', 'random'],
                            help='Frontier method (default from configuration)')
        parser.add_argument('--points', type=int, help='Number of frontier points')
        parser.add_argument('--match-col', choices=['StdDev', 'var', 'ES'], help='Risk axis of the frontier')
        parser.add_argument('--seed', type=int, help='Random seed for the random method')
        parser.add_argument('--output', help='Write the table to this CSV file instead of stdout')

    def _emit(self, frame: pd.DataFrame, output: Optional[str]) -> None:
        if output:
            frame.to_csv(output)
            self.logger.info(f"Wrote {len(frame)} rows to {output}")
        else:
            sys.stdout.write(frame.to_csv())

    def handle_config_command(self, args) -> int:
        """Handle configuration commands."""
        if args.action == 'show':
            config = self.config_manager.get_app_config()
            sys.stdout.write(yaml.safe_dump(config.to_dict(), default_flow_style=False, sort_keys=False))
            return EXIT_OK

        try:
            self.config_manager.validate()
        except FrontierError as e:
            print(f"Configuration validation failed: {e}", file=sys.stderr)
            return EXIT_CONFIGURATION
        print("Configuration is valid")
        return EXIT_OK

    def handle_frontier_command(self, args) -> int:
        """Handle frontier commands."""
        returns = self.service.load_returns(args.returns)
        spec = self.service.load_spec(args.spec)
        frontier = self.service.compute_frontier(
            spec, returns, method=args.method, match_column=args.match_col,
            n_points=args.points, random_state=args.seed
        )

        if args.weights or args.by_groups:
            table = self.service.frontier_weights(frontier, spec if args.by_groups else None)
        else:
            table = frontier.to_frame()
        self._emit(table, args.output)
        return EXIT_OK

    def handle_overlay_command(self, args) -> int:
        """Handle overlay commands."""
        returns = self.service.load_returns(args.returns)
        specs = {path: self.service.load_spec(path) for path in args.spec}
        frontiers = self.service.compare(
            specs, returns, method=args.method, match_column=args.match_col,
            n_points=args.points, random_state=args.seed
        )
        self._emit(self.service.overlay(frontiers), args.output)
        return EXIT_OK

    def run(self, args) -> int:
        """Run the CLI application."""
        handlers = {
            'config': self.handle_config_command,
            'frontier': self.handle_frontier_command,
            'overlay': self.handle_overlay_command,
        }
        handler = handlers.get(args.command)
        if handler is None:
            print("No command specified. Use --help for available commands.", file=sys.stderr)
            return EXIT_OK

        try:
            return handler(args)
        except Exception as e:
            response = get_error_handler().handle_error(e, ErrorContext(operation=args.command))
            print(f"Error: {e}", file=sys.stderr)
            return response['exit_code']


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI application."""
    cli = FrontierCLI()
    parser = cli.create_parser()
    args = parser.parse_args(argv)

    environment = args.environment or os.getenv("ENVIRONMENT")
    try:
        cli.initialize(args.config_dir, environment)
    except FrontierError as e:
        print(f"Failed to initialize application: {e}", file=sys.stderr)
        return EXIT_CONFIGURATION

    return cli.run(args)


if __name__ == '__main__':
    sys.exit(main())
