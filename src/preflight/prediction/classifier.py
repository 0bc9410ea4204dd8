"""Error prediction: run the weighted patterns over one file."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TYPE_CHECKING

from preflight.models import AnalysisResult, PredictedError
from preflight.prediction.patterns import DEFAULT_PATTERNS, Scan

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from preflight.models import FileContext
    from preflight.prediction.patterns import PredictionPattern, Trigger

logger = logging.getLogger(__name__)

PREDICTION_RULE_ID = "error-prediction"
ERROR_THRESHOLD = 0.7
WARNING_THRESHOLD = 0.4


def _render(template: str | None, values: dict[str, str]) -> str | None:
    if template is None:
        return None
    return template.format_map(defaultdict(str, values))


def _evaluate(pattern: PredictionPattern, scan: Scan, trigger: Trigger) -> PredictedError:
    fired = [pattern.trigger_name]
    for signal in pattern.signals:
        if signal.probe(scan, trigger):
            fired.append(signal.name)
    return PredictedError(
        pattern_id=pattern.id,
        error_type=pattern.error_type,
        phase=pattern.phase,
        probability=pattern.score(fired),
        file=scan.ctx.path,
        message=_render(pattern.message, trigger.values) or "",
        prevention_suggestion=pattern.prevention,
        expected_error_text=_render(pattern.expected_error_text, trigger.values),
        line=scan.ctx.line_of(trigger.offset),
        signals=tuple(fired),
    )


def predict(
    ctx: FileContext,
    frameworks: frozenset[str],
    patterns: Sequence[PredictionPattern] = DEFAULT_PATTERNS,
) -> list[PredictedError]:
    """Predict likely build/runtime errors in one file.

    Every trigger instance yields one prediction.  Output is sorted by
    line, then by pattern order, so identical input gives identical output.
    A pattern that raises is logged and skipped.
    """
    scan = Scan(ctx, frameworks)
    ranked: list[tuple[int, int, int, PredictedError]] = []
    for order, pattern in enumerate(patterns):
        if not pattern.applies(frameworks):
            continue
        try:
            triggers = pattern.locate(scan)
            predictions = [_evaluate(pattern, scan, trigger) for trigger in triggers]
        except Exception as exc:  # noqa: BLE001
            logger.warning("Prediction pattern %s failed on %s: %s", pattern.id, ctx.path, exc)
            continue
        for seq, prediction in enumerate(predictions):
            ranked.append((prediction.line or 0, order, seq, prediction))
    ranked.sort(key=lambda item: item[:3])
    return [prediction for *_key, prediction in ranked]


def severity_for(probability: float) -> str:
    if probability > ERROR_THRESHOLD:
        return "error"
    if probability > WARNING_THRESHOLD:
        return "warning"
    return "info"


def to_analysis_results(predictions: Iterable[PredictedError]) -> list[AnalysisResult]:
    """Convert predictions into ordinary findings (``error-prediction`` rule id)."""
    return [
        AnalysisResult(
            rule_id=PREDICTION_RULE_ID,
            severity=severity_for(prediction.probability),
            message=(
                f"{prediction.error_type}: {prediction.message} "
                f"({round(prediction.probability * 100)}% probability)"
            ),
            file=prediction.file,
            line=prediction.line,
            suggestion=prediction.prevention_suggestion,
            category="error-prediction",
            confidence=prediction.probability,
        )
        for prediction in predictions
    ]
