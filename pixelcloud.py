"""CLI entrypoint for rendering a pixel word cloud PNG from a JSON word list."""
from __future__ import annotations

import argparse
import json
import logging
import random
from pathlib import Path
from typing import Any, Mapping

from app import build_request
from cloud_core import CloudConfig, RenderContext, ValidationError, parse_quality, render_cloud


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render a pixel word cloud PNG.")
    parser.add_argument(
        "input_path",
        help="JSON file with a list of {text, size, color} words or a full /cloud request body.",
    )
    parser.add_argument(
        "output_path",
        nargs="?",
        default="output/wordcloud.png",
        help="Destination PNG file path.",
    )
    parser.add_argument("--width", type=int, default=None, help="Canvas width in pixels.")
    parser.add_argument("--height", type=int, default=None, help="Canvas height in pixels.")
    parser.add_argument("--background", type=str, default=None, help="Background colour as #rrggbb.")
    parser.add_argument(
        "--quality",
        type=str,
        default=None,
        help="Sampling stride: low, normal, high or an integer (smaller is finer).",
    )
    parser.add_argument("--font", type=str, default=None, help="Path to a TrueType/OpenType font file.")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible layouts.")
    parser.add_argument(
        "--dump-json",
        type=Path,
        default=None,
        help="Optional path to dump the placed words as JSON alongside the PNG.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log every placement.")
    return parser.parse_args()


def load_payload(path: Path, args: argparse.Namespace, config: CloudConfig) -> Mapping[str, Any]:
    with path.open("r", encoding="utf-8") as infile:
        raw = json.load(infile)

    payload = {"content": raw} if isinstance(raw, list) else dict(raw)
    payload.setdefault("width", config.default_width)
    payload.setdefault("height", config.default_height)
    payload.setdefault("color", config.default_background)
    if args.width is not None:
        payload["width"] = args.width
    if args.height is not None:
        payload["height"] = args.height
    if args.background is not None:
        payload["color"] = args.background
    if args.quality is not None:
        payload["quality"] = args.quality
    return payload


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    input_path = Path(args.input_path)
    output_path = Path(args.output_path)
    if not input_path.exists():
        raise SystemExit(f"Input file not found: {input_path}")

    config = CloudConfig.from_env()
    if args.font:
        config.font_path = args.font
    if args.quality is not None:
        config.quality = parse_quality(args.quality)

    try:
        payload = load_payload(input_path, args, config)
    except (json.JSONDecodeError, TypeError, ValueError) as exc:
        raise SystemExit(f"Could not read {input_path}: {exc}")

    context = RenderContext.create(config)
    rng = random.Random(args.seed) if args.seed is not None else None
    try:
        result = render_cloud(context, build_request(payload, config), rng=rng)
    except ValidationError as exc:
        raise SystemExit(str(exc))

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(result.canvas.to_png())
    print(output_path)
    print(f"{result.layout.placed} of {result.layout.requested} words placed")

    if args.dump_json:
        args.dump_json.parent.mkdir(parents=True, exist_ok=True)
        placements = [placement.as_dict() for placement in result.layout.placements]
        args.dump_json.write_text(json.dumps(placements, indent=2), encoding="utf-8")


if __name__ == "__main__":
    main()
