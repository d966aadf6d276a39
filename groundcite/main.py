"""CLI entrypoint for grounded Q&A over a page or transcript file."""

from __future__ import annotations

import argparse
import json
import logging
import os


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Answer a question from one page or video transcript with grounded citations."
    )
    parser.add_argument(
        "--question",
        required=True,
        help="Question to answer from the context.",
    )
    parser.add_argument(
        "--context",
        required=True,
        help="Page text (txt/md/rst/pdf) or transcript JSON file.",
    )
    parser.add_argument("--url", default="", help="Source URL shown to the model.")
    parser.add_argument("--title", default="", help="Source title shown to the model.")
    parser.add_argument(
        "--video-duration",
        type=float,
        default=None,
        help="Video length in seconds; playback ranges are clamped to it.",
    )
    parser.add_argument(
        "--output",
        default="outputs/answer.json",
        help="Path for JSON result output.",
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Run deterministic offline mode (no API keys or external model calls).",
    )
    return parser


def main() -> None:
    args = build_parser().parse_args()
    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
    if args.offline:
        os.environ["OFFLINE_MODE"] = "1"
        os.environ["LLM_PROVIDER"] = "mock"

    from groundcite.pipeline import run_qa

    result = run_qa(
        question=args.question,
        context_path=args.context,
        url=args.url,
        title=args.title,
        video_duration_sec=args.video_duration,
        output_json_path=args.output,
    )
    print(json.dumps(result, indent=2, ensure_ascii=True))


if __name__ == "__main__":
    main()
