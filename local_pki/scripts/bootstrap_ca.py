#!/usr/bin/env python3
"""Bootstrap the local root CA and prompt to trust it when newly created."""

import argparse
import asyncio
import sys
from pathlib import Path

from local_pki.lib.config import PkiConfig
from local_pki.lib.errors import PkiError
from local_pki.lib.logging_config import LOGGER
from local_pki.lib.pki_manager import PkiManager


def add_common_arguments(parser: argparse.ArgumentParser) -> None:
    """Options shared by every local_pki script."""
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=None,
        help="Application data directory (default: $LOCAL_PKI_DATA_DIR or ~/.devbox-pro/data)",
    )
    parser.add_argument(
        "--in-process",
        action="store_true",
        help="Use the cryptography library instead of the openssl binary",
    )


def build_manager(args: argparse.Namespace) -> PkiManager:
    config = PkiConfig.from_env() if args.data_dir is None else PkiConfig.from_env(data_dir=args.data_dir)
    return PkiManager.create(config, in_process=args.in_process)


def main(argv: list[str] | None = None) -> int:
    """Create the root CA if absent.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    parser = argparse.ArgumentParser(description="Bootstrap local root CA")
    add_common_arguments(parser)
    args = parser.parse_args(argv)

    try:
        manager = build_manager(args)

        LOGGER.info("Bootstrapping root CA...")
        status = asyncio.run(manager.initialize())

        if status.created:
            LOGGER.info("Root CA created:")
        else:
            LOGGER.info("Root CA already present:")
        LOGGER.info("  Key: %s", status.authority.private_key_path)
        LOGGER.info("  Cert: %s", status.authority.certificate_path)
        return 0

    except (PkiError, ValueError, OSError) as e:
        LOGGER.error("Bootstrap failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
