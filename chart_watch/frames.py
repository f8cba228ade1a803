"""Async frame sources: video files / cameras and replayed still images."""

import asyncio
import logging
from pathlib import Path

import cv2

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".bmp", ".webp"}


def _read_image(p: Path):
    im = cv2.imread(str(p))
    if im is None:
        logger.warning("Failed to read image: %s", p)
    return im


async def video_frames(source):
    """Yield BGR frames from a file path or camera index until the stream ends."""
    if isinstance(source, str) and source.isdigit():
        source = int(source)
    cap = cv2.VideoCapture(source)
    if not cap.isOpened():
        raise FileNotFoundError(f"Cannot open video source: {source}")
    try:
        while True:
            ok, frame = await asyncio.to_thread(cap.read)
            if not ok:
                break
            yield frame
    finally:
        cap.release()


async def image_frames(paths, fps: float = 6.0, loop: bool = False):
    """Replay still images at a fixed rate (a stand-in for a live stream)."""
    paths = [Path(p) for p in paths]
    images = [im for im in (_read_image(p) for p in paths) if im is not None]
    if not images:
        return
    interval = 1.0 / max(fps, 1.0)
    i = 0
    while loop or i < len(images):
        yield images[i % len(images)]
        i += 1
        await asyncio.sleep(interval)


def list_images(folder) -> list[Path]:
    return sorted(p for p in Path(folder).iterdir() if p.suffix.lower() in IMAGE_SUFFIXES)
