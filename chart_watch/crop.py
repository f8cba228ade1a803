from .types import AxisSide, CropPlan, NormRect

DEFAULT_CHART_BOX = NormRect(0.06, 0.12, 0.88, 0.76)


class CropPlanner:
    """Header / Y-axis / footer / body rectangles around a chart box."""

    def plan(self, chart_box, axis_side=AxisSide.UNKNOWN, frame_size=None) -> CropPlan:
        # frame_size unused: the plan is normalized
        base = chart_box or DEFAULT_CHART_BOX
        band_h = max(base.h * 0.12, 0.08)
        axis_w = max(base.w * 0.12, 0.08)

        header = NormRect(base.x, max(0.0, base.y - band_h), base.w, min(band_h, base.y))

        footer_y = min(1 - band_h, base.max_y)
        footer = NormRect(base.x, footer_y, base.w, min(band_h, 1 - footer_y))

        if axis_side == AxisSide.LEFT:
            y_axis = NormRect(max(0.0, base.x - axis_w), base.y, axis_w, base.h)
        else:
            y_axis = NormRect(min(1 - axis_w, base.max_x), base.y, axis_w, base.h)

        return CropPlan(
            header=header.clamped(),
            y_axis=y_axis.clamped(),
            footer=footer.clamped(),
            body=base.clamped(),
        )
