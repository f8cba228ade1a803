import asyncio
import logging
import time
from dataclasses import dataclass

from .chart_extractor import CandleChartExtractor
from .config import PLAN_MOVE_TOLERANCE, PipelineConfig
from .crop import CropPlanner
from .detectors.candle import CandleChartDetection, CandleChartDetector
from .detectors.visual_gate import VisualChartGate
from .gate import CandleGate, CandleGateResult, GateStatus
from .parsers.platforms import AdapterRegistry
from .snapshot import FrameSnapshot, crop_normalized
from .stabilizer import ChartStabilizer
from .types import CandleObject, ChartGateResult, CropPlan, OcrResult, RegionOcrBundle

logger = logging.getLogger(__name__)

# header and axis labels are small; the footer only needs HH:MM / dates
REGION_TIERS = {"header": "accurate", "y_axis": "accurate", "footer": "fast"}


@dataclass
class FrameOutcome:
    """What happened to one processed frame.

    ``stage`` is the last stage reached: 'snapshot', 'no_chart',
    'no_candle' or 'gated'. ``candle`` is set only when the candle gate
    accepted this frame.
    """

    stage: str
    reason: str = ""
    gate: ChartGateResult | None = None
    plan: CropPlan | None = None
    detection: CandleChartDetection | None = None
    decision: CandleGateResult | None = None
    candle: CandleObject | None = None


def _moved(a, b, tol: float) -> bool:
    if a is None or b is None:
        return a is not b
    return any(abs(x - y) > tol for x, y in zip(a.as_tuple(), b.as_tuple()))


class ChartPipeline:
    """Frame-by-frame candle chart watcher.

    One frame is processed at a time: snapshot -> visual gate -> stabilizer ->
    crop plan -> region OCR (concurrent) -> platform adapter -> detector ->
    extractor -> candle gate -> store / row logger.
    """

    def __init__(
        self,
        config: PipelineConfig | None = None,
        *,
        ocr=None,
        visual_gate=None,
        stabilizer=None,
        planner=None,
        detector=None,
        registry=None,
        extractor=None,
        candle_gate=None,
        store=None,
        row_logger=None,
        clock=time.monotonic,
    ):
        self.config = config or PipelineConfig()
        cfg = self.config
        if ocr is None:
            from .ocr.engine import TextRecognizer

            ocr = TextRecognizer(cfg.ocr_engine)
        self.ocr = ocr
        self.visual_gate = visual_gate or VisualChartGate(cfg.gate_min_confidence)
        self.stabilizer = stabilizer or ChartStabilizer(cfg.stabilizer_alpha, cfg.gate_min_confidence)
        self.planner = planner or CropPlanner()
        self.detector = detector or CandleChartDetector()
        self.registry = registry or AdapterRegistry()
        self.extractor = extractor or CandleChartExtractor()
        self.candle_gate = candle_gate or CandleGate(cfg.stable_count, cfg.cooldown_seconds, cfg.window_seconds)
        self.store = store
        self.row_logger = row_logger
        self.clock = clock

        self.frame_count = 0
        self._plan_key = None
        self._plan = None

    # ---------- Stages ----------
    def _plan_for(self, gate: ChartGateResult, frame_size) -> CropPlan:
        if self._plan is not None and self._plan_key is not None:
            box, side = self._plan_key
            if side == gate.axis_side and not _moved(box, gate.chart_box, PLAN_MOVE_TOLERANCE):
                return self._plan
        self._plan = self.planner.plan(gate.chart_box, gate.axis_side, frame_size)
        self._plan_key = (gate.chart_box, gate.axis_side)
        return self._plan

    async def _recognize(self, image, rect, tier: str) -> OcrResult:
        crop = crop_normalized(image, rect)
        if crop is None:
            return OcrResult.empty()
        try:
            return await asyncio.to_thread(self.ocr.recognize, crop, tier)
        except Exception:
            logger.warning("OCR failed on %s crop", tier, exc_info=True)
            return OcrResult.empty()

    async def _read_regions(self, image, plan: CropPlan):
        return await asyncio.gather(
            self._recognize(image, plan.header, REGION_TIERS["header"]),
            self._recognize(image, plan.y_axis, REGION_TIERS["y_axis"]),
            self._recognize(image, plan.footer, REGION_TIERS["footer"]),
        )

    def _emit(self, candle: CandleObject, gate: ChartGateResult, snapshot, plan: CropPlan):
        if self.store is not None:
            try:
                thumbnail = snapshot.thumbnail_jpeg(plan.body)
                self.store.record(candle, gate.chart_box, thumbnail)
            except Exception:
                logger.warning("Candle store failed", exc_info=True)
        if self.row_logger is not None:
            try:
                self.row_logger.log(candle)
            except Exception:
                logger.warning("Row logger failed", exc_info=True)

    async def _read_chart(self, snapshot: FrameSnapshot, gate: ChartGateResult, plan: CropPlan):
        """OCR, platform adapter, detector and extractor for one chart in view.

        Returns ``(plan, detection, candle)``; ``candle`` is None when the
        detector rejects the text or the frame cannot be decoded.
        """
        image = await asyncio.to_thread(snapshot.full_res_image)
        if image is None:
            return plan, None, None
        header, y_axis, footer = await self._read_regions(image, plan)

        match = self.registry.detect(header.text, " ".join([header.text, y_axis.text, footer.text]))
        adapter = match[0] if match else None
        if adapter is not None:
            refined = adapter.refine_crop_plan(plan, (snapshot.width, snapshot.height))
            if refined.header != plan.header:
                header = await self._recognize(image, refined.header, REGION_TIERS["header"])
            plan = refined

        regions = RegionOcrBundle(header=header, y_axis=y_axis, footer=footer)
        detection = self.detector.detect(regions, gate.confidence)
        if not detection.is_candle_chart:
            return plan, detection, None
        candle = self.extractor.extract(detection.context, plan, snapshot, detection.confidence, adapter)
        return plan, detection, candle

    async def inspect_frame(self, frame, captured_at=None) -> FrameOutcome:
        """Run one frame through every stage without smoothing or gating.

        Leaves stabilizer and candle gate state untouched; ``candle`` is the
        extracted candle whether or not it would have been emitted.
        """
        snapshot = FrameSnapshot.from_frame(frame, captured_at)
        if snapshot is None:
            return FrameOutcome("snapshot", "Unusable frame")
        gate = await asyncio.to_thread(self.visual_gate.evaluate, snapshot)
        plan = self.planner.plan(gate.chart_box, gate.axis_side, (snapshot.width, snapshot.height))
        plan, detection, candle = await self._read_chart(snapshot, gate, plan)
        if detection is None:
            return FrameOutcome("snapshot", "Frame could not be decoded", gate=gate, plan=plan)
        stage = "gated" if candle is not None else "no_candle"
        return FrameOutcome(stage, detection.reason, gate=gate, plan=plan, detection=detection, candle=candle)

    async def process_frame(self, frame, captured_at=None) -> FrameOutcome:
        snapshot = FrameSnapshot.from_frame(frame, captured_at)
        if snapshot is None:
            return FrameOutcome("snapshot", "Unusable frame")

        raw = await asyncio.to_thread(self.visual_gate.evaluate, snapshot)
        gate = self.stabilizer.stabilize(raw)
        if not gate.is_chart:
            self.candle_gate.reset()
            return FrameOutcome("no_chart", "No chart detected", gate=gate)

        plan = self._plan_for(gate, (snapshot.width, snapshot.height))
        plan, detection, candle = await self._read_chart(snapshot, gate, plan)
        if detection is None:
            return FrameOutcome("snapshot", "Frame could not be decoded", gate=gate, plan=plan)
        if candle is None:
            logger.debug("Frame %d: %s (%.2f)", self.frame_count, detection.reason, detection.confidence)
            return FrameOutcome("no_candle", detection.reason, gate=gate, plan=plan, detection=detection)

        decision = self.candle_gate.process(candle, snapshot.captured_at)
        logger.debug("Frame %d: %s (%s)", self.frame_count, decision.status.value, decision.reason)

        emitted = None
        if decision.status == GateStatus.ACCEPTED:
            emitted = decision.candle
            self._emit(emitted, gate, snapshot, plan)
        return FrameOutcome(
            "gated", decision.reason, gate=gate, plan=plan, detection=detection, decision=decision, candle=emitted
        )

    # ---------- Loop ----------
    async def run(self, frames, on_outcome=None) -> list[CandleObject]:
        """Consume an async frame iterator until it ends; return emitted candles.

        Frames closer than ``sample_interval`` to the last processed one are
        dropped unprocessed.
        """
        emitted = []
        last = None
        try:
            async for frame in frames:
                now = self.clock()
                if last is not None and now - last < self.config.sample_interval:
                    continue
                last = now
                self.frame_count += 1
                try:
                    outcome = await self.process_frame(frame)
                    if outcome.candle is not None:
                        emitted.append(outcome.candle)
                    if on_outcome is not None:
                        on_outcome(outcome)
                except Exception:
                    logger.warning("Frame %d failed", self.frame_count, exc_info=True)
        except Exception:
            logger.warning("Frame source failed; stopping", exc_info=True)
        return emitted
