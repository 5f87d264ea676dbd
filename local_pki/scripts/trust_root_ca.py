#!/usr/bin/env python3
"""Install the local root CA into the OS trust store."""

import argparse
import asyncio
import sys

from local_pki.lib.logging_config import LOGGER
from local_pki.scripts.bootstrap_ca import add_common_arguments, build_manager


def main(argv: list[str] | None = None) -> int:
    """Trust the root CA, printing manual steps when automation is unavailable.

    Returns:
        Exit code (0 when trusted, 1 when manual action is needed)
    """
    parser = argparse.ArgumentParser(description="Trust local root CA")
    parser.add_argument(
        "--system",
        action="store_true",
        help="Install into the system-wide store where supported (prompts for admin)",
    )
    parser.add_argument(
        "--instructions",
        action="store_true",
        help="Only print manual trust instructions",
    )
    add_common_arguments(parser)
    args = parser.parse_args(argv)

    try:
        manager = build_manager(args)
    except (ValueError, OSError) as e:
        LOGGER.error("Could not read configuration: %s", e)
        return 1

    if args.instructions:
        print(manager.get_manual_trust_instructions())
        return 0

    result = asyncio.run(manager.trust_root_ca(system_wide=args.system))
    if result.success:
        LOGGER.info(result.message)
        return 0

    LOGGER.warning("%s", result.message)
    if result.error:
        LOGGER.warning("  Error: %s", result.error)
    print(result.manual_instructions)
    return 1


if __name__ == "__main__":
    sys.exit(main())
