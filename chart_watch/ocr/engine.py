import logging

import cv2
import numpy as np

from ..config import OCR_MIN_LINE_CONFIDENCE
from ..types import NormRect, OcrLine, OcrResult

logger = logging.getLogger(__name__)

# lazy globals to avoid heavy init on import
_ENGINES = {}

_INSTALL_HINT = {
    "rapid": "pip install rapidocr-onnxruntime",
    "paddle": "pip install 'paddleocr<3' paddlepaddle",
    "tesseract": "sudo apt-get install tesseract-ocr && pip install pytesseract",
}


def _ensure_ocr(kind: str):
    if kind in _ENGINES:
        return _ENGINES[kind]
    try:
        if kind == "rapid":
            from rapidocr_onnxruntime import RapidOCR

            engine = RapidOCR()
        elif kind == "paddle":
            from paddleocr import PaddleOCR

            engine = PaddleOCR(use_angle_cls=True, lang="en", show_log=False)
        elif kind == "tesseract":
            import pytesseract

            engine = pytesseract
        else:
            raise ValueError(f"Unknown OCR engine: {kind}")
    except ImportError as e:
        raise RuntimeError(f"OCR engine '{kind}' is not available. Install it with:\n  {_INSTALL_HINT[kind]}") from e
    _ENGINES[kind] = engine
    return engine


def _prep_accurate(im_bgr: np.ndarray) -> np.ndarray:
    """Boost OCR on small axis labels: grayscale -> upscale -> binarize."""
    g = cv2.cvtColor(im_bgr, cv2.COLOR_BGR2GRAY) if im_bgr.ndim == 3 else im_bgr
    g = cv2.resize(g, None, fx=2.0, fy=2.0, interpolation=cv2.INTER_CUBIC)
    g = cv2.threshold(g, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)[1]
    return cv2.cvtColor(g, cv2.COLOR_GRAY2BGR)


def _poly_to_rect(poly, w: int, h: int) -> NormRect:
    xs = [float(p[0]) for p in poly]
    ys = [float(p[1]) for p in poly]
    x1, x2 = max(min(xs), 0.0), min(max(xs), float(w))
    y1, y2 = max(min(ys), 0.0), min(max(ys), float(h))
    return NormRect(x1 / w, y1 / h, max(x2 - x1, 0.0) / w, max(y2 - y1, 0.0) / h)


def _rapid_lines(engine, im_rgb):
    h, w = im_rgb.shape[:2]
    result, _ = engine(im_rgb)  # list of [box, text, score]
    return [OcrLine(str(text), float(score), _poly_to_rect(box, w, h)) for box, text, score in result or []]


def _paddle_lines(engine, im_rgb):
    h, w = im_rgb.shape[:2]
    res = engine.ocr(im_rgb, cls=True)
    out = []
    for block in res or []:
        for poly, (text, conf) in block or []:
            out.append(OcrLine(str(text), float(conf), _poly_to_rect(poly, w, h)))
    return out


def _tesseract_lines(engine, im_rgb):
    h, w = im_rgb.shape[:2]
    data = engine.image_to_data(im_rgb, config="--psm 11", output_type=engine.Output.DICT)
    grouped = {}
    for i, word in enumerate(data["text"]):
        word = (word or "").strip()
        conf = float(data["conf"][i])
        if not word or conf < 0:
            continue
        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        grouped.setdefault(key, []).append(
            (word, conf / 100.0, data["left"][i], data["top"][i], data["width"][i], data["height"][i])
        )
    out = []
    for words in grouped.values():
        x1 = min(wd[2] for wd in words)
        y1 = min(wd[3] for wd in words)
        x2 = max(wd[2] + wd[4] for wd in words)
        y2 = max(wd[3] + wd[5] for wd in words)
        text = " ".join(wd[0] for wd in words)
        conf = sum(wd[1] for wd in words) / len(words)
        out.append(OcrLine(text, conf, NormRect(x1 / w, y1 / h, (x2 - x1) / w, (y2 - y1) / h)))
    return out


_READERS = {"rapid": _rapid_lines, "paddle": _paddle_lines, "tesseract": _tesseract_lines}


class TextRecognizer:
    """Region text recognition with a speed/quality tier.

    Parameters
    ----------
    kind : str
        'rapid' (RapidOCR), 'paddle' (PaddleOCR) or 'tesseract'.
    min_confidence : float
        Lines below this confidence are dropped.
    """

    def __init__(self, kind: str = "rapid", min_confidence: float = OCR_MIN_LINE_CONFIDENCE):
        if kind not in _READERS:
            raise ValueError(f"Unknown OCR engine: {kind}")
        self.kind = kind
        self.min_confidence = min_confidence

    def recognize(self, im_bgr: np.ndarray, tier: str = "accurate") -> OcrResult:
        """Recognize text lines; boxes are normalized to ``im_bgr``."""
        if im_bgr is None or im_bgr.size == 0:
            return OcrResult.empty()
        engine = _ensure_ocr(self.kind)
        im = _prep_accurate(im_bgr) if tier == "accurate" else im_bgr
        if im.ndim == 2:
            im = cv2.cvtColor(im, cv2.COLOR_GRAY2BGR)
        # Convert to RGB for better OCR contrast
        im_rgb = cv2.cvtColor(im, cv2.COLOR_BGR2RGB)
        lines = _READERS[self.kind](engine, im_rgb)
        return OcrResult.from_lines(lines, self.min_confidence)

    def detect_boxes(self, im_bgr: np.ndarray) -> list[NormRect]:
        """Text rectangles of one image (visual gate input)."""
        return [line.box for line in self.recognize(im_bgr, tier="fast").lines]
