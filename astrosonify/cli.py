from __future__ import annotations

import argparse
import json
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from astrosonify.classifier import ImageType
from astrosonify.config import SonificationConfig
from astrosonify.errors import SonificationError
from astrosonify.pipeline import inspect_image, sonify


@dataclass
class PreparedRun:
    command: str
    file_path: Path
    hint: Optional[str]
    config: SonificationConfig
    output: Optional[Path]
    analysis_output: Optional[Path]


def _hint_type(value: str) -> str:
    try:
        return ImageType.parse(value).value
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="astrosonify",
        description="Analyse astronomical images and render them as stereo audio",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the resolved configuration and exit",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="Print the analysis record as JSON")
    analyze.add_argument("--file", required=True, type=Path, help="Path to the image (PNG/JPEG/GIF/BMP/TIFF/WebP)")
    analyze.add_argument("--hint", type=_hint_type, help="Image type: deep-sky, planetary, solar, lunar or mixed")
    analyze.add_argument("--max-dimension", type=int, help="Downsample so neither side exceeds this (px)")

    render = sub.add_parser("render", help="Render the image to a WAV file")
    render.add_argument("--file", required=True, type=Path, help="Path to the image (PNG/JPEG/GIF/BMP/TIFF/WebP)")
    render.add_argument("--hint", type=_hint_type, help="Image type: deep-sky, planetary, solar, lunar or mixed")
    render.add_argument("--max-dimension", type=int, help="Downsample so neither side exceeds this (px)")
    render.add_argument("--duration", type=float, help="Audio length in seconds")
    render.add_argument("--sample-rate", type=int, help="Audio sample rate (Hz)")
    render.add_argument("--workers", type=int, help="Synthesis threads")
    render.add_argument("--output", type=Path, help="Destination WAV (default: astronomy-sonification-<type>.wav)")
    render.add_argument("--analysis", type=Path, help="Also write the analysis record as JSON here")

    return parser


def _prepare(args: argparse.Namespace) -> PreparedRun:
    config = SonificationConfig.from_env().replace(
        max_dimension=args.max_dimension,
        duration=getattr(args, "duration", None),
        sample_rate=getattr(args, "sample_rate", None),
        workers=getattr(args, "workers", None),
    )
    return PreparedRun(
        command=args.command,
        file_path=args.file,
        hint=args.hint,
        config=config,
        output=getattr(args, "output", None),
        analysis_output=getattr(args, "analysis", None),
    )


def _print_dry_run(prep: PreparedRun) -> None:
    print(f"{prep.command} {prep.file_path}")
    print(f"Hint: {prep.hint or 'auto'}")
    print(f"Config: {json.dumps(prep.config.as_dict(), indent=2)}")


def _run_analyze(prep: PreparedRun) -> int:
    report = inspect_image(
        prep.file_path.read_bytes(),
        prep.hint,
        filename=prep.file_path.name,
        config=prep.config,
    )
    payload: Dict[str, object] = report.analysis.to_dict()
    payload.update({"fallback": report.fallback, "width": report.width, "height": report.height})
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


def _run_render(prep: PreparedRun) -> int:
    result = sonify(
        prep.file_path.read_bytes(),
        prep.hint,
        filename=prep.file_path.name,
        config=prep.config,
    )
    output = prep.output or Path(f"astronomy-sonification-{result.analysis.image_type.value}.wav")
    output.write_bytes(result.wav)
    if prep.analysis_output is not None:
        payload: Dict[str, object] = result.analysis.to_dict()
        payload["fallback"] = result.fallback
        prep.analysis_output.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    if result.fallback:
        print(f"astrosonify: {prep.file_path} could not be decoded; used default analysis", file=sys.stderr)
    print(
        f"Saved {result.duration:g}s {result.sample_rate} Hz {result.analysis.image_type.value} audio "
        f"to {output.resolve()}"
    )
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        prep = _prepare(args)
    except (SonificationError, ValueError) as exc:
        print(f"astrosonify: {exc}", file=sys.stderr)
        return 2

    if args.dry_run:
        _print_dry_run(prep)
        return 0

    try:
        if prep.command == "analyze":
            return _run_analyze(prep)
        if prep.command == "render":
            return _run_render(prep)
    except (SonificationError, ValueError, OSError) as exc:
        print(f"astrosonify: {exc}", file=sys.stderr)
        return 2

    parser.error("Unsupported command")  # pragma: no cover - argparse enforces options
    return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
