"""
ScriptVision Main Entry Point

Run the ScriptVision API server.
"""

import argparse
import os
import sys
from pathlib import Path

from scriptvision.core.config import load_config
from scriptvision.core.logging_config import LogLevel, get_logger, setup_logging
from scriptvision.core.startup import validate_environment


def main():
    """Main entry point for the ScriptVision server."""
    parser = argparse.ArgumentParser(
        description="ScriptVision - Timed image generation for narrated scripts"
    )

    parser.add_argument(
        "--config", "-c",
        type=str,
        help="Path to configuration file"
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host for the API server (default: from config)"
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the API server (default: from config)"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )

    parser.add_argument(
        "--reload",
        action="store_true",
        help="Reload on code changes"
    )

    parser.add_argument(
        "--skip-validation",
        action="store_true",
        help="Skip API key validation at startup"
    )

    args = parser.parse_args()

    if args.config:
        # The server process builds its app from this path
        os.environ["SCRIPTVISION_CONFIG"] = str(Path(args.config))
    config = load_config(Path(args.config) if args.config else None)

    setup_logging(
        level=LogLevel.DEBUG if args.debug else LogLevel.INFO,
        log_file=config.logs_dir / "scriptvision.log",
        verbose=args.debug or config.verbose_logging,
    )
    logger = get_logger("main")
    logger.info(f"Starting ScriptVision ({config.store.backend} store)...")

    if not args.skip_validation:
        check = validate_environment(config)
        for warning in check.warnings:
            logger.warning(warning)
        if not check.valid:
            logger.error("Environment validation failed:")
            for error in check.errors:
                logger.error(f"  - {error}")
            print("\nRun with --skip-validation to bypass (not recommended)")
            sys.exit(1)

    from scriptvision.api.main import start_server
    start_server(
        host=args.host or config.server.host,
        port=args.port or config.server.port,
        reload=args.reload,
    )


if __name__ == "__main__":
    main()
