from __future__ import annotations

import argparse
import logging
from pathlib import Path

from arwah.assembly.render import CompositionParameters, decode_photo, load_template, render_card_png
from arwah.errors import CompositorError

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Render a tahlil memorial card from a portrait photo.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Be more verbose.")
    parser.add_argument("photo", type=Path, help="Portrait photo (JPG or PNG)")
    parser.add_argument("output", type=Path, help="Output PNG file")
    parser.add_argument("--template", type=Path, default=None, help="Card template image")
    parser.add_argument("--circle-size", type=float, default=18.0, help="Circle size, percent of the template (10-30)")
    parser.add_argument("--feather", type=float, default=30.0, help="Edge feather, percent (0-100)")
    parser.add_argument("--name", default="", help="Caption printed under the photo")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(level=logging.WARNING)
    logging.getLogger("arwah").setLevel(logging.DEBUG if args.verbose else logging.INFO)

    try:
        params = CompositionParameters.from_percent(args.circle_size, args.feather, args.name)
    except ValueError as e:
        logger.error(str(e))
        return 2

    try:
        template = load_template(args.template)
        photo = decode_photo(args.photo.read_bytes())
        png = render_card_png(photo, template, params)
        args.output.write_bytes(png)
    except (OSError, CompositorError) as e:
        logger.error(str(e))
        return 1

    logger.info("wrote %s", args.output)
    return 0
