import cv2
import numpy as np

from .types import Trajectory, TrajectoryResult

SAMPLE_COLUMNS = 32
MIN_SAMPLES = 8
DARKNESS_MIN = 0.2
SLOPE_CALIBRATION = 5.0
FLAT_SLOPE = 0.12
VOLATILE_MIN = 0.55


class TrajectoryAnalyzer:
    """Direction of the drawn price path from darkness-weighted column centroids."""

    def analyze(self, image: np.ndarray, price_range: tuple[float, float]) -> TrajectoryResult:
        if image is None or image.size == 0:
            return TrajectoryResult(Trajectory.UNKNOWN, None, 0.0)
        gray = image if image.ndim == 2 else cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        h, w = gray.shape[:2]
        if w <= 10 or h <= 10:
            return TrajectoryResult(Trajectory.UNKNOWN, None, 0.0)

        low, high = price_range
        span = max(high - low, 1e-6)

        darkness = 1.0 - gray.astype(np.float64) / 255.0
        darkness[darkness <= DARKNESS_MIN] = 0.0
        rows = np.arange(h, dtype=np.float64)

        xs, prices = [], []
        for x in np.unique(np.linspace(0, w - 1, min(SAMPLE_COLUMNS, w)).astype(int)):
            col = darkness[:, x]
            weight = col.sum()
            if weight <= 0:
                continue
            y = float((col * rows).sum() / weight)
            xs.append(float(x))
            prices.append(high - y / h * (high - low))  # top row is the max price

        if len(xs) < MIN_SAMPLES:
            return TrajectoryResult(Trajectory.UNKNOWN, None, 0.2)

        xs = np.asarray(xs)
        prices = np.asarray(prices)
        slope, intercept = self._fit(xs, prices)

        per_pixel = span / max(w, 1)
        normalized = float(np.clip(slope / per_pixel / SLOPE_CALIBRATION, -1.0, 1.0))

        residual = float(np.abs(xs * slope + intercept - prices).mean())
        volatility = min(residual / span * 3.0, 1.0)

        if abs(normalized) <= FLAT_SLOPE:
            trajectory = Trajectory.VOLATILE if volatility > VOLATILE_MIN else Trajectory.FLAT
        elif normalized > 0:
            trajectory = Trajectory.UP
        else:
            trajectory = Trajectory.DOWN

        confidence = 0.4 + (1 - volatility) * 0.4 + min(abs(normalized), 1.0) * 0.2
        return TrajectoryResult(trajectory, normalized, float(min(max(confidence, 0.0), 1.0)))

    @staticmethod
    def _fit(xs: np.ndarray, ys: np.ndarray) -> tuple[float, float]:
        """Ordinary least squares; slope 0 when x has no spread."""
        n = len(xs)
        denom = n * (xs * xs).sum() - xs.sum() ** 2
        if abs(denom) <= 1e-6:
            slope = 0.0
        else:
            slope = float((n * (xs * ys).sum() - xs.sum() * ys.sum()) / denom)
        intercept = float(ys.mean() - slope * xs.mean())
        return slope, intercept
