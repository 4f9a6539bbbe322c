"""Command-line entry points.

``tagserve-classify EXPORT_DIR TAGS_PATH IMAGE_URL`` classifies one image and
prints the result as JSON. ``tagserve-serve`` runs the HTTP server.
"""

from __future__ import annotations

import argparse
import logging
import sys

from tagserve.config import get_settings
from tagserve.logs import configure_logging
from tagserve.ml.errors import ClassifyError, ModelLoadError
from tagserve.ml.image_classifier import ImageClassifier

logger = logging.getLogger(__name__)

EXIT_CLASSIFY_FAILED = 1
EXIT_MODEL_LOAD_FAILED = 2


def build_classify_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tagserve-classify",
        description="Classify an image fetched from a URL with an exported ONNX model",
    )
    parser.add_argument("export_dir", help="Export directory holding the ONNX model")
    parser.add_argument("tags_path", help="Path to tags translation file")
    parser.add_argument("image_url", help="URL to fetch image from")
    parser.add_argument(
        "--minimal",
        action="store_true",
        help="Print only tag and probability",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level, written to stderr (default: TAGSERVE_LOG_LEVEL)",
    )
    return parser


def classify_main(argv: list[str] | None = None) -> int:
    args = build_classify_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level or settings.log_level)

    try:
        classifier = ImageClassifier(args.export_dir, args.tags_path, settings)
    except ModelLoadError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_MODEL_LOAD_FAILED

    try:
        result = classifier.classify_from_url(args.image_url)
    except ClassifyError as exc:
        print(f"Classification failure: '{exc}'", file=sys.stderr)
        return EXIT_CLASSIFY_FAILED

    logger.info("Classified %s as %s (%.4f)", args.image_url, result.tag, result.probability)
    print(result.to_json(minimal=args.minimal))
    return 0


def build_serve_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tagserve-serve", description="Run the tagserve HTTP server")
    parser.add_argument("--host", default=None, help="Bind address (default: TAGSERVE_HOST)")
    parser.add_argument("--port", type=int, default=None, help="Bind port (default: TAGSERVE_PORT)")
    return parser


def serve_main(argv: list[str] | None = None) -> int:
    import uvicorn

    args = build_serve_parser().parse_args(argv)
    settings = get_settings()
    uvicorn.run(
        "tagserve.main:app",
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=settings.log_level.lower(),
    )
    return 0


def main() -> None:
    sys.exit(classify_main())


def serve() -> None:
    sys.exit(serve_main())


if __name__ == "__main__":
    main()
