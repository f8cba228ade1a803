import pytest

from chart_watch.crop import DEFAULT_CHART_BOX, CropPlanner
from chart_watch.types import AxisSide, NormRect, OcrLine, OcrResult


def _inside_unit(r: NormRect):
    eps = 1e-9
    return -eps <= r.x and -eps <= r.y and r.w >= 0 and r.h >= 0 and r.max_x <= 1 + eps and r.max_y <= 1 + eps


def test_clamped_stays_in_unit_square():
    r = NormRect(-0.2, 0.9, 1.5, 0.4).clamped()
    assert _inside_unit(r)
    assert r.x == 0.0 and r.w == 1.0
    assert r.h == pytest.approx(0.1)


def test_lerp_weights_other():
    a = NormRect(0, 0, 1, 1)
    b = NormRect(1, 1, 0, 0)
    mid = a.lerp(b, 0.25)
    assert mid.as_tuple() == pytest.approx((0.25, 0.25, 0.75, 0.75))


def test_to_xyxy():
    assert NormRect(0.1, 0.2, 0.5, 0.5).to_xyxy(200, 100) == (20, 20, 120, 70)


def test_ocr_result_drops_low_confidence_lines():
    box = NormRect(0, 0, 1, 1)
    res = OcrResult.from_lines([OcrLine("AAPL", 0.9, box), OcrLine("noise", 0.1, box), OcrLine("  ", 0.9, box)], 0.3)
    assert res.text == "AAPL"
    assert res.confidence == pytest.approx(0.9)
    assert len(res.lines) == 1
    assert OcrResult.from_lines([], 0.3) == OcrResult.empty()


@pytest.mark.parametrize(
    "box",
    [
        None,
        DEFAULT_CHART_BOX,
        NormRect(0.0, 0.0, 1.0, 1.0),
        NormRect(-0.3, -0.2, 1.6, 1.5),
        NormRect(0.95, 0.95, 0.2, 0.2),
        NormRect(0.4, 0.01, 0.02, 0.02),
    ],
)
@pytest.mark.parametrize("side", list(AxisSide))
def test_plan_rects_are_clamped(box, side):
    plan = CropPlanner().plan(box, side)
    for r in (plan.header, plan.y_axis, plan.footer, plan.body):
        assert _inside_unit(r)


def test_plan_places_axis_on_detected_side():
    body = NormRect(0.16, 0.12, 0.68, 0.76)
    left = CropPlanner().plan(body, AxisSide.LEFT)
    right = CropPlanner().plan(body, AxisSide.RIGHT)
    assert left.y_axis.mid_x < body.x
    assert right.y_axis.mid_x > body.max_x
    # header above, footer at the bottom edge of the body
    assert left.header.max_y == pytest.approx(body.y)
    assert left.footer.y < body.max_y + 1e-9
    assert left.body == body


def test_plan_defaults_without_box():
    plan = CropPlanner().plan(None)
    assert plan.body == DEFAULT_CHART_BOX.clamped()
    assert plan.header.h == pytest.approx(max(0.76 * 0.12, 0.08))
