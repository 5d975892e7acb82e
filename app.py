"""Flask application serving the pixel word cloud renderer."""
from __future__ import annotations

import argparse
import base64
import logging
import math
import threading
import webbrowser
from pathlib import Path
from typing import Any, List, Mapping, Optional

from flask import Flask, jsonify, request, send_from_directory

from cloud_core import (
    CloudConfig,
    CloudRequest,
    RenderContext,
    ValidationError,
    WordSpec,
    parse_quality,
    render_cloud,
)

BASE_DIR = Path(__file__).resolve().parent
STATIC_DIR = BASE_DIR / "static"
DEFAULT_PORT = 8765

logger = logging.getLogger(__name__)


def parse_words(payload: Mapping[str, Any]) -> List[WordSpec]:
    content = payload.get("content", [])
    if content is None:
        return []
    if not isinstance(content, list):
        raise ValidationError("content must be a list of words")

    words: List[WordSpec] = []
    for item in content:
        if not isinstance(item, Mapping):
            continue
        text = str(item.get("text", ""))
        try:
            size = float(item.get("size"))
        except (TypeError, ValueError):
            logger.warning("Dropping %r: unreadable size %r", text, item.get("size"))
            continue
        if not math.isfinite(size) or size <= 0:
            logger.warning("Dropping %r: size must be a positive number", text)
            continue
        color = item.get("color")
        words.append(WordSpec(text=text, size=size, color=color if isinstance(color, str) else ""))
    return words


def parse_dimension(payload: Mapping[str, Any], key: str) -> int:
    try:
        return int(payload.get(key, 0))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{key} must be an integer") from exc


def build_request(payload: Mapping[str, Any], config: CloudConfig) -> CloudRequest:
    background = payload.get("color")
    return CloudRequest(
        words=parse_words(payload),
        width=parse_dimension(payload, "width"),
        height=parse_dimension(payload, "height"),
        background=background if isinstance(background, str) else None,
        quality=parse_quality(payload.get("quality"), default=config.quality),
    )


def create_app(context: Optional[RenderContext] = None, static_dir: Path = STATIC_DIR) -> Flask:
    context = context or RenderContext.create()
    app = Flask(__name__, static_folder=str(static_dir))
    app.config["RENDER_CONTEXT"] = context

    @app.get("/")
    def index() -> Any:
        return send_from_directory(static_dir, "index.html")

    @app.post("/cloud")
    def cloud() -> Any:
        payload = request.get_json(silent=True)
        if not isinstance(payload, Mapping):
            return jsonify({"err": "request body must be a JSON object"}), 400

        try:
            cloud_request = build_request(payload, context.config)
            result = render_cloud(context, cloud_request)
        except ValidationError as exc:
            logger.info("Rejected request: %s", exc)
            return jsonify({"err": str(exc)}), 400

        layout = result.layout
        return jsonify({
            "data": base64.b64encode(result.canvas.to_png()).decode("ascii"),
            "placed": layout.placed,
            "requested": layout.requested,
            "placements": [placement.as_dict() for placement in layout.placements],
        })

    return app


def open_url_with_browser(url: str) -> bool:
    try:
        opened = webbrowser.open(url)
    except webbrowser.Error as exc:
        logger.warning("Could not open a browser: %s", exc)
        return False
    if not opened:
        logger.warning("No browser available, open %s manually", url)
    return opened


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve the pixel word cloud renderer.")
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Interface to bind.")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Port to listen on.")
    parser.add_argument("--debug", action="store_true", help="Run Flask in debug mode.")
    parser.add_argument("--no-browser", action="store_true", help="Do not open the UI in a browser.")
    parser.add_argument("--font", type=str, default=None, help="Path to a TrueType/OpenType font file.")
    parser.add_argument(
        "--quality",
        type=str,
        default=None,
        help="Default sampling stride: low, normal, high or an integer.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log every placement.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = CloudConfig.from_env()
    if args.font:
        config.font_path = args.font
    if args.quality is not None:
        config.quality = parse_quality(args.quality)

    app = create_app(RenderContext.create(config))
    logger.info("Debug: %s", args.debug)

    if not args.no_browser:
        url = f"http://localhost:{args.port}/"
        threading.Timer(1.0, open_url_with_browser, args=(url,)).start()

    app.run(host=args.host, port=args.port, debug=args.debug, threaded=True, use_reloader=False)


if __name__ == "__main__":
    main()
