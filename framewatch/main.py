"""
framewatch command line.

    framewatch compare REF CAND     score two image files
    framewatch watch                watch a camera and log scene changes

Heavy imports (cv2) are deferred to the subcommands so --help is instant.
"""

import argparse
import logging
import math
import sys
import time

from framewatch.config import CAMERA_SOURCE, CAPTURE_INTERVAL, LOG_LEVEL, SCENE_CHANGE_THRESHOLD
from framewatch.utils.frame_diff import NO_BASELINE_SCORE

logger = logging.getLogger("framewatch")


def _load_image(path: str):
    import cv2

    image = cv2.imread(path, cv2.IMREAD_COLOR)
    if image is None:
        logger.error("Could not read image: %s", path)
    return image


def describe_score(score: float, threshold: float) -> str:
    if math.isnan(score):
        return "degenerate"
    return "changed" if score >= threshold else "unchanged"


def run_compare(args) -> int:
    from framewatch.perception.camera import resize_frame
    from framewatch.utils.frame_diff import compute_image_difference
    from framewatch.utils.image_stats import image_mean, image_sigma

    reference = _load_image(args.reference)
    candidate = _load_image(args.candidate)
    if reference is None or candidate is None:
        return 1

    if candidate.shape != reference.shape:
        h, w = reference.shape[:2]
        logger.info("Resizing candidate %dx%d to %dx%d", candidate.shape[1], candidate.shape[0], w, h)
        candidate = resize_frame(candidate, (w, h))

    score = compute_image_difference(reference, candidate)
    print(f"{score:.6f} {describe_score(score, args.threshold)}")

    if args.stats:
        for label, image in (("reference", reference), ("candidate", candidate)):
            mean = image_mean(image)
            print(f"{label}: mean={mean:.4f} sigma={image_sigma(image, mean=mean):.4f}")
    return 0


def describe_change(score: float) -> str:
    if score == NO_BASELINE_SCORE:
        return "reference set"
    if math.isnan(score):
        return "degenerate frame"
    return f"change score={score:.4f}"


def run_watch(args) -> int:
    from framewatch.detector import ChangeDetector
    from framewatch.perception.camera import Camera
    from framewatch.utils.pixels import InvalidImageError

    source = args.source if args.source is not None else CAMERA_SOURCE
    if isinstance(source, str) and source.isdigit():
        source = int(source)

    camera = Camera(detector=ChangeDetector(threshold=args.threshold))
    if not camera.start(source):
        logger.error("Failed to initialize camera. Exiting.")
        return 1

    logger.info("Watching for scene changes (threshold=%.3f, every %.1fs)", args.threshold, args.interval)
    try:
        while True:
            if camera.get_frame() is not None and camera.scene_changed():
                print(f"{time.strftime('%Y-%m-%d %H:%M:%S')} {describe_change(camera.detector.last_score)}")
            time.sleep(args.interval)
    except KeyboardInterrupt:
        pass
    except InvalidImageError as e:
        # Every later frame from this source would fail the same way
        logger.error("Camera delivered a frame that cannot be scored: %s", e)
        return 1
    finally:
        camera.stop()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="framewatch", description="Lighting-adjusted frame change detection")
    sub = parser.add_subparsers(dest="command", required=True)

    compare = sub.add_parser("compare", help="Score the difference between two image files")
    compare.add_argument("reference", help="Reference image path")
    compare.add_argument("candidate", help="Candidate image path")
    compare.add_argument("--threshold", "-t", type=float, default=SCENE_CHANGE_THRESHOLD)
    compare.add_argument("--stats", action="store_true", help="Also print mean and sigma of each image")
    compare.set_defaults(func=run_compare)

    watch = sub.add_parser("watch", help="Watch a camera and log scene changes")
    watch.add_argument("--source", "-s", default=None, help="Camera index or stream URL")
    watch.add_argument("--interval", "-i", type=float, default=CAPTURE_INTERVAL, help="Seconds between captures")
    watch.add_argument("--threshold", "-t", type=float, default=SCENE_CHANGE_THRESHOLD)
    watch.set_defaults(func=run_watch)
    return parser


def main(argv=None) -> None:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=LOG_LEVEL,
        format="[framewatch] %(asctime)s %(name)s %(levelname)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    sys.exit(args.func(args))


if __name__ == "__main__":
    main()
