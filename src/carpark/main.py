# File: src/carpark/main.py
"""
Main application entry point for the Car Park Ledger
Wires configuration, storage, the parking service and the console together
"""

from typing import List, Optional
from pathlib import Path
import argparse
import logging
import sys

from .config import CarParkConfig, load_config, CONFIG_ENV_VAR
from .domain.exceptions import ConfigError
from .application.auth_service import AuthService
from .infrastructure.factories import ParkingServiceFactory
from .presentation.console import ConsoleApp


def setup_logging(log_dir: Path = Path("logs"), level: str = "INFO") -> logging.Logger:
    """Setup application logging configuration"""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    # Operator output is printed by the console; the stream only carries warnings
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(logging.WARNING)

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_dir / 'carpark.log', encoding='utf-8'),
            stream_handler
        ],
        force=True
    )
    return logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="carpark",
        description="Console car park ledger: vehicle entry, exit billing and reports"
    )
    parser.add_argument(
        "--config",
        help=f"YAML configuration file (default: ${CONFIG_ENV_VAR})"
    )
    parser.add_argument("--data-dir", help="Directory holding the ledger files")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log file verbosity"
    )
    return parser


class CarParkApplication:
    """Main application controller that sets up all components"""

    def __init__(self, config: CarParkConfig, console_kwargs: Optional[dict] = None):
        self.config = config
        self.logger = setup_logging(config.log_dir, config.log_level)
        self.logger.info("Starting Car Park Ledger...")

        # Initialize components (Dependency Injection)
        self.service = ParkingServiceFactory.create(config)
        self.auth = AuthService(lambda: self.service.store)
        self.console = ConsoleApp(
            self.service,
            self.auth,
            currency_symbol=config.currency_symbol,
            **(console_kwargs or {})
        )
        self.logger.info("Components initialized")

    def run(self) -> int:
        try:
            return self.console.run()
        finally:
            self.logger.info("Application shutting down...")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application"""
    args = build_parser().parse_args(argv)
    try:
        config = load_config(args.config, data_dir=args.data_dir, log_level=args.log_level)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    try:
        app = CarParkApplication(config)
        return app.run()
    except Exception as e:
        print(f"Fatal error: {str(e)}", file=sys.stderr)
        logging.error(f"Fatal error in main: {str(e)}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
