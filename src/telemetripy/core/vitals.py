"""Quality ratings for page-load vitals."""

from telemetripy.core.models import VitalName, VitalRating

# (good upper bound, poor lower bound exclusive)
VITAL_THRESHOLDS: dict[VitalName, tuple[float, float]] = {
    VitalName.CLS: (0.1, 0.25),
    VitalName.FID: (100, 300),
    VitalName.FCP: (1800, 3000),
    VitalName.LCP: (2500, 4000),
    VitalName.TTFB: (800, 1800),
}


def classify(name: VitalName | str, value: float) -> VitalRating:
    """Rate a vital sample.

    Args:
        name: Vital signal (e.g. ``VitalName.LCP`` or ``"LCP"``).
        value: Raw sample; milliseconds for all signals except CLS.

    Returns:
        ``good`` up to the first threshold, ``poor`` above the second,
        ``needs-improvement`` in between.
    """
    good, poor = VITAL_THRESHOLDS[VitalName(name)]
    if value <= good:
        return VitalRating.GOOD
    if value <= poor:
        return VitalRating.NEEDS_IMPROVEMENT
    return VitalRating.POOR
