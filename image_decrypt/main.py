#!/usr/bin/env python3
"""
Command-line interface for resumable batch image decryption.

Decrypts every encrypted image under the configured input directory into a
mirrored output tree. Completed files are recorded in a cache file so an
interrupted run can be restarted without redoing finished work.

Author: Lorenzo Albanese (alblor)
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from .config import DEFAULT_CONFIG_FILE, ConfigError, load_settings
from .logging_config import configure_logging
from .pipeline import BatchDecryptor

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image-decrypt",
        description="Batch decrypt encrypted images into a mirrored directory tree",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Decrypt using ./config.json
  image-decrypt

  # Use another configuration file and override the input directory
  image-decrypt --config /etc/image-decrypt.json --input-dir /data/encrypted

  # Show what would be decrypted
  image-decrypt --dry-run

Environment Variables:
  IMAGE_DECRYPT_KEY - Triple DES key when "key" is absent from the config file
  IMAGE_DECRYPT_IV  - Triple DES IV when "iv" is absent from the config file
  LOG_LEVEL         - Logging level when "log_level" is absent from the config file
        """
    )
    parser.add_argument('--config', '-c', default=DEFAULT_CONFIG_FILE,
                        help=f'Configuration file (default: {DEFAULT_CONFIG_FILE})')
    parser.add_argument('--input-dir', help='Override input_dir from the configuration')
    parser.add_argument('--output-dir', help='Override output_dir from the configuration')
    parser.add_argument('--coroutine', type=int,
                        help='Override the concurrency limit (coroutine)')
    parser.add_argument('--workers', type=int, help='Override the worker thread count')
    parser.add_argument('--dry-run', action='store_true',
                        help='List files that would be decrypted without decrypting')
    parser.add_argument('--verbose', '-v', action='store_true', help='Debug logging')
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the image-decrypt command."""
    args = build_parser().parse_args(argv)

    overrides = {
        'input_dir': os.path.abspath(args.input_dir) if args.input_dir else None,
        'output_dir': os.path.abspath(args.output_dir) if args.output_dir else None,
        'coroutine': args.coroutine,
        'workers': args.workers,
        'log_level': 'DEBUG' if args.verbose else None,
    }

    try:
        settings = load_settings(args.config, overrides)
    except ConfigError as e:
        print(f"❌ Error: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(settings.get_log_level(), settings.INFO_LOG, settings.ERROR_LOG)
    logger.info(f"✅ Configuration loaded from {args.config}")
    logger.debug(f"Settings: {settings.describe()}")

    decryptor = BatchDecryptor(settings)

    if args.dry_run:
        try:
            pending = decryptor.plan()
        except ConfigError as e:
            logger.error(f"❌ {e}")
            sys.exit(1)
        print(f"\n🔍 DRY RUN - {len(pending)} files would be decrypted "
              f"({decryptor.counts['skipped']} already processed):")
        for i, item in enumerate(pending[:20], 1):
            print(f"  {i:3d}. {item.relative_path}")
        if len(pending) > 20:
            print(f"      ... and {len(pending) - 20} more files")
        return

    try:
        result = decryptor.run()
    except ConfigError as e:
        logger.error(f"❌ {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n⏸️ Decryption interrupted by user, progress so far has been saved")
        sys.exit(130)

    print(f"\n🎉 Decryption completed!")
    print(f"   📁 Input directory: {settings.INPUT_DIR}")
    print(f"   📁 Output directory: {settings.OUTPUT_DIR}")
    print(f"   ✅ Successfully decrypted: {result['successful']} files")
    if result['skipped'] > 0:
        print(f"   ⏭️  Skipped (already processed): {result['skipped']} files")
    if result['failed'] > 0:
        print(f"   ❌ Failed: {result['failed']} files")
    if result['walk_errors'] > 0:
        print(f"   ⚠️ Unreadable directories: {result['walk_errors']}")
    print(f"   ⏱️  Total time: {result['total_time']:.2f} seconds")

    if result['failed'] > 0:
        sys.exit(1)


if __name__ == "__main__":
    main()
