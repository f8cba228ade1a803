from dataclasses import dataclass, field
from datetime import datetime, timezone

import cv2
import numpy as np

from .config import (
    LOW_RES_WIDTH,
    MID_RES_JPEG_QUALITY,
    MID_RES_WIDTH,
    THUMBNAIL_JPEG_QUALITY,
    THUMBNAIL_WIDTH,
)
from .types import NormRect


def _crop(im: np.ndarray, xyxy: tuple[int, int, int, int]) -> np.ndarray:
    """Safe crop by xyxy (clamped to image)."""
    x1, y1, x2, y2 = xyxy
    h, w = im.shape[:2]
    x1 = max(0, min(x1, w - 1))
    x2 = max(0, min(x2, w))
    y1 = max(0, min(y1, h - 1))
    y2 = max(0, min(y2, h))
    return im[y1:y2, x1:x2]


def _resize_to_width(im: np.ndarray, width: int) -> np.ndarray:
    h, w = im.shape[:2]
    height = max(1, int(round(h * width / w)))
    interp = cv2.INTER_AREA if width < w else cv2.INTER_LINEAR
    return cv2.resize(im, (width, height), interpolation=interp)


def _to_bgr(frame: np.ndarray) -> np.ndarray | None:
    """3-channel BGR view of a gray, BGR or BGRA frame; None for anything else."""
    if frame.ndim == 2 or (frame.ndim == 3 and frame.shape[2] == 1):
        return cv2.cvtColor(frame.reshape(frame.shape[:2]), cv2.COLOR_GRAY2BGR)
    if frame.ndim != 3:
        return None
    if frame.shape[2] == 4:
        return cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)
    if frame.shape[2] == 3:
        return frame
    return None


@dataclass(frozen=True)
class FrameSnapshot:
    """Immutable per-frame bundle for the multi-stage pipeline.

    Holds a low-res grayscale buffer for cheap gating, a mid-res JPEG for
    trajectory work and a full-res lossless PNG for OCR crops. All three are
    rendered from the same frame at construction time.
    """

    captured_at: datetime
    width: int
    height: int
    low_res_gray: bytes
    low_res_size: tuple[int, int]  # (width, height)
    mid_res_jpeg: bytes
    mid_res_size: tuple[int, int]
    full_res_png: bytes = field(repr=False)

    @classmethod
    def from_frame(cls, frame: np.ndarray, captured_at: datetime | None = None):
        """Render the three representations of a BGR (or gray/BGRA) frame.

        Returns None for empty frames or when encoding fails.
        """
        if frame is None or frame.size == 0 or frame.shape[0] == 0 or frame.shape[1] == 0:
            return None
        bgr = _to_bgr(frame)
        if bgr is None:
            return None
        h, w = bgr.shape[:2]

        low = cv2.cvtColor(_resize_to_width(bgr, LOW_RES_WIDTH), cv2.COLOR_BGR2GRAY)
        mid = _resize_to_width(bgr, MID_RES_WIDTH)

        ok_mid, mid_buf = cv2.imencode(
            ".jpg", mid, [int(cv2.IMWRITE_JPEG_QUALITY), MID_RES_JPEG_QUALITY]
        )
        ok_full, full_buf = cv2.imencode(".png", bgr)
        if not (ok_mid and ok_full):
            return None

        return cls(
            captured_at=captured_at or datetime.now(timezone.utc),
            width=w,
            height=h,
            low_res_gray=np.ascontiguousarray(low).tobytes(),
            low_res_size=(low.shape[1], low.shape[0]),
            mid_res_jpeg=mid_buf.tobytes(),
            mid_res_size=(mid.shape[1], mid.shape[0]),
            full_res_png=full_buf.tobytes(),
        )

    # ---------- Decoding ----------
    def low_res_array(self) -> np.ndarray:
        w, h = self.low_res_size
        return np.frombuffer(self.low_res_gray, dtype=np.uint8).reshape(h, w)

    def mid_res_image(self) -> np.ndarray | None:
        return cv2.imdecode(np.frombuffer(self.mid_res_jpeg, dtype=np.uint8), cv2.IMREAD_COLOR)

    def full_res_image(self) -> np.ndarray | None:
        return cv2.imdecode(np.frombuffer(self.full_res_png, dtype=np.uint8), cv2.IMREAD_COLOR)

    # ---------- Cropping ----------
    def crop_full_res(self, rect: NormRect) -> np.ndarray | None:
        im = self.full_res_image()
        if im is None:
            return None
        return crop_normalized(im, rect)

    def crop_mid_res(self, rect: NormRect) -> np.ndarray | None:
        im = self.mid_res_image()
        if im is None:
            return None
        return crop_normalized(im, rect)

    def thumbnail_jpeg(
        self,
        rect: NormRect,
        target_width: int = THUMBNAIL_WIDTH,
        quality: int = THUMBNAIL_JPEG_QUALITY,
    ) -> bytes | None:
        crop = self.crop_full_res(rect)
        if crop is None:
            return None
        ok, buf = cv2.imencode(
            ".jpg", _resize_to_width(crop, target_width), [int(cv2.IMWRITE_JPEG_QUALITY), quality]
        )
        return buf.tobytes() if ok else None


def crop_normalized(im: np.ndarray, rect: NormRect) -> np.ndarray | None:
    """Crop an already decoded image by a normalized rectangle."""
    h, w = im.shape[:2]
    crop = _crop(im, rect.to_xyxy(w, h))
    return crop if crop.size else None
