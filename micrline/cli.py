"""Command-line interface for MICR line recognition."""

import argparse
import json
import sys
from pathlib import Path

from micrline.errors import ConfigError, MICRError
from micrline.logging_config import get_logger, level_for, setup_logging

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = -1


class _ArgumentParser(argparse.ArgumentParser):
    """Argument errors exit with the failure code instead of 2."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(EXIT_FAILURE, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="micrline-recognizer",
        description="Recognize MICR (E-13B / CMC-7) lines in check images",
    )
    parser.add_argument(
        "--image",
        required=True,
        help="Path to the image file (JPEG, PNG, BMP)",
    )
    parser.add_argument(
        "--assets",
        help="Path to the assets folder (templates/, models/)",
    )
    parser.add_argument(
        "--tokenfile",
        help="Path to a license token file (stored, not validated)",
    )
    parser.add_argument(
        "--tokendata",
        help="Base64 license token data (stored, not validated)",
    )
    parser.add_argument(
        "--config",
        help="Path to a JSON engine configuration file",
    )
    parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show per-glyph details and debug logging",
    )
    return parser


def _load_config(args) -> dict:
    config = {}
    if args.config:
        path = Path(args.config)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except OSError as e:
            raise ConfigError(f"Cannot read config file {path}: {e}") from e
        except json.JSONDecodeError as e:
            raise ConfigError(f"Malformed JSON in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must hold a JSON object")
        config.update(data)

    if args.assets:
        config["assets_folder"] = args.assets
    if args.tokenfile:
        config["license_token_file"] = args.tokenfile
    if args.tokendata:
        config["license_token_data"] = args.tokendata
    if args.verbose:
        config["debug_level"] = "verbose"
    return config


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(level_for("verbose" if args.verbose else "warn"))

    from micrline.api import MICRReader
    from micrline.parsing.formatter import ResultFormatter

    try:
        config = _load_config(args)
        setup_logging(level_for(config.get("debug_level", "warn")))
        with MICRReader(config) as reader:
            result = reader.read(args.image)
    except (MICRError, FileNotFoundError) as e:
        logger.error("%s", e)
        result = ResultFormatter().format_error(e)
        _print_result(result, args.format, args.verbose)
        return EXIT_FAILURE

    _print_result(result, args.format, args.verbose)
    return EXIT_OK


def _print_result(result, fmt, verbose):
    if fmt == "json":
        print(result.to_json(indent=2))
        return

    if not result.ok:
        print(f"Error [{result.status_code}]: {result.status_message}", file=sys.stderr)
        return

    if not result.lines:
        print("No MICR line found")

    for n, line in enumerate(result.lines):
        print(f"MICR Line {n}:     {line['text']}")
        print(f"Confidence:      {line['confidence']:.2%}")
        fields = line.get("fields")
        if fields:
            print(f"Routing Number:  {fields['routing_number'] or 'N/A'}")
            print(f"Account Number:  {fields['account_number'] or 'N/A'}")
            print(f"Check Number:    {fields['check_number'] or 'N/A'}")
            if fields["amount"]:
                print(f"Amount:          {fields['amount']}")
            print(f"Routing Valid:   {fields['routing_valid']}")

        if verbose:
            region = line["region"]
            print(
                f"Region:          x={region['x']} y={region['y']} "
                f"w={region['w']} h={region['h']}"
            )
            print(f"\nGlyph Details ({len(line['glyphs'])} glyphs):")
            for g in line["glyphs"]:
                flags = " rejected" if g["rejected"] else ""
                flags += " fallback" if g["fallback"] else ""
                print(
                    f"  [{g['index']:2d}] {g['display']:>8s}  "
                    f"score={g['score']:.3f}  "
                    f"region={tuple(g['region'].values())}{flags}"
                )
        print()

    if result.warnings:
        print("Warnings:")
        for w in result.warnings:
            print(f"  - {w}")


if __name__ == "__main__":
    sys.exit(main())
