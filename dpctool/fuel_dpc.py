"""The FUEL archive backend and its command line."""

from __future__ import annotations

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from .fuel_create import create_dpc
from .fuel_extract import extract_dpc
from .fuel_format import DEFAULT_VERSION, FormatError
from .fuel_manifest import Manifest
from .fuel_objects import split_object
from .fuel_validate import write_validation
from .options import AskFunction, Options, OverwriteAborted

DEFAULT_SOUND_SAMPLE_RATE = 44100


@dataclass(frozen=True)
class BackendSettings:
    """Settings specific to the FUEL backend."""

    unoptimized_pool: bool = False
    no_pool: bool = False
    sound_sample_rate: int = DEFAULT_SOUND_SAMPLE_RATE
    effective_version_string: str = DEFAULT_VERSION


def _backend_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fuel", description="FUEL")
    parser.add_argument(
        "-p",
        "--unoptimized-pool",
        action="store_true",
        help="Don't minify the pool manifest",
    )
    parser.add_argument(
        "-n", "--no-pool", action="store_true", help="Don't use a pool"
    )
    parser.add_argument(
        "-s",
        "--sound-sample-rate",
        help="Default sample rate to use for sounds",
    )
    parser.add_argument(
        "-T",
        "--effective-version-string",
        help="Version string to compare against",
    )
    return parser


def _sample_rate(text: Optional[str]) -> int:
    if text is None:
        return DEFAULT_SOUND_SAMPLE_RATE
    try:
        value = int(text)
    except ValueError:
        return DEFAULT_SOUND_SAMPLE_RATE
    if not 0 <= value <= 0xFFFFFFFF:
        return DEFAULT_SOUND_SAMPLE_RATE
    return value


def parse_backend_args(custom_args: Optional[Sequence[str]]) -> BackendSettings:
    """Parse the backend-specific arguments."""
    args = _backend_parser().parse_args(list(custom_args or ()))
    return BackendSettings(
        unoptimized_pool=args.unoptimized_pool,
        no_pool=args.no_pool,
        sound_sample_rate=_sample_rate(args.sound_sample_rate),
        effective_version_string=(
            args.effective_version_string
            if args.effective_version_string is not None
            else DEFAULT_VERSION
        ),
    )


class FuelDPC:
    """Extracts, creates, validates and splits FUEL archives."""

    def __init__(self, options: Options, custom_args: Optional[Sequence[str]] = None):
        settings = parse_backend_args(custom_args)
        self.options = options
        self.unoptimized_pool = settings.unoptimized_pool
        self.no_pool = settings.no_pool
        self.sound_sample_rate = settings.sound_sample_rate
        self.effective_version_string = settings.effective_version_string
        self.version = DEFAULT_VERSION
        self.ask: Optional[AskFunction] = None

    def extract(self, input_path, output_path) -> Optional[Manifest]:
        """Extract an archive into a directory; None when skipped."""
        manifest = extract_dpc(input_path, output_path, self.options, self.ask)
        if manifest is not None:
            self.version = manifest.header.version_string
        return manifest

    def create(self, input_path, output_path) -> Optional[Path]:
        """Build an archive from an extracted directory; None when skipped."""
        result = create_dpc(
            input_path,
            output_path,
            self.options,
            no_pool=self.no_pool,
            unoptimized_pool=self.unoptimized_pool,
            ask=self.ask,
        )
        if result is not None:
            manifest_path = Path(input_path) / "manifest.json"
            manifest = Manifest.loads(manifest_path.read_text(encoding="utf-8"))
            self.version = manifest.header.version_string
        return result

    def validate(self, input_path, output_path) -> Optional[dict]:
        """Validate an archive and write its description as JSON."""
        return write_validation(input_path, output_path, self.options, self.ask)

    def split_object(self, input_path, output_path) -> tuple[Path, Path]:
        """Split an object file into class object and data files."""
        return split_object(input_path, output_path)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dpctool",
        description="Work with FUEL archives. Backend options follow '--'.",
    )
    parser.add_argument(
        "command", choices=("extract", "create", "validate", "split")
    )
    parser.add_argument("input", help="Input path")
    parser.add_argument("output", help="Output path")
    parser.add_argument("-q", "--quiet", action="store_true", help="No progress output")
    parser.add_argument(
        "-f", "--force", action="store_true", help="Overwrite without asking"
    )
    parser.add_argument(
        "-u", "--unsafe", action="store_true", help="Skip version and parser checks"
    )
    parser.add_argument("-l", "--lz", action="store_true", help="Handle compression")
    parser.add_argument(
        "-O", "--optimization", action="store_true", help="Optimize the output"
    )
    parser.add_argument(
        "-r", "--recursive", action="store_true", help="Process object contents"
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the archive command line."""
    arguments = list(sys.argv[1:] if argv is None else argv)
    if "--" in arguments:
        split_at = arguments.index("--")
        arguments, custom_args = arguments[:split_at], arguments[split_at + 1 :]
    else:
        custom_args = []

    args = _build_parser().parse_args(arguments)
    options = Options.from_namespace(args)
    backend = FuelDPC(options, custom_args)
    actions = {
        "extract": backend.extract,
        "create": backend.create,
        "validate": backend.validate,
        "split": backend.split_object,
    }
    try:
        actions[args.command](args.input, args.output)
    except OverwriteAborted as exc:
        print(exc, file=sys.stderr)
        return 1
    except (FormatError, ValueError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())