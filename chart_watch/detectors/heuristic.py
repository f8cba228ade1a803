import cv2
import numpy as np

from ..types import NormRect


def detect_text_boxes(img, min_height: int = 4, max_height_frac: float = 0.12):
    """Find text-like rectangles without running recognition.

    Horizontal gradient -> Otsu -> horizontal closing merges glyphs into word
    blobs; contours with a text-ish size and aspect are kept. Returns
    normalized (top-left origin) rectangles.
    """
    if img is None or img.size == 0:
        return []
    gray = img if img.ndim == 2 else cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    h, w = gray.shape[:2]

    grad = cv2.morphologyEx(gray, cv2.MORPH_GRADIENT, np.ones((3, 3), np.uint8))
    bw = cv2.threshold(grad, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)[1]
    kernel = cv2.getStructuringElement(cv2.MORPH_RECT, (9, 1))
    closed = cv2.morphologyEx(bw, cv2.MORPH_CLOSE, kernel)
    cnts, _ = cv2.findContours(closed, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

    boxes = []
    for c in cnts:
        x, y, ww, hh = cv2.boundingRect(c)
        if hh < min_height or hh > h * max_height_frac:
            continue
        if ww < hh * 1.2 or ww > w * 0.6:  # words are wider than tall; skip long rules
            continue
        fill = cv2.countNonZero(bw[y : y + hh, x : x + ww]) / float(ww * hh)
        if fill < 0.2:
            continue
        boxes.append(NormRect(x / w, y / h, ww / w, hh / h))
    return boxes
