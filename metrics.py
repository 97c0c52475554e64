'''
              =====================================================   METRIC SCORER MODULE   ====================================================
'''


'''
This module scores a binary prediction vector against the ground-truth labels of the dataset. It provides:
 - Confusion counts (TP, FP, FN, TN) over all samples
 - Sensitivity, specificity and precision, each left undefined (NaN) when its denominator is zero
 - The combined score (sensitivity + specificity + precision) used as the objective of every parameter search
 - The NaN-aware comparison deciding whether a new combined score beats the current best
'''

from imports import *
from errors import InvalidArgument

logger = logging.getLogger("METRICS")


# ------------------------------------------
#  DATA CONTAINERS FOR CLASSIFICATION METRICS
# ------------------------------------------

@dataclass(frozen=True)
class ConfusionCounts:
    tp: int
    fp: int
    fn: int
    tn: int

    @property
    def total(self) -> int:
        return self.tp + self.fp + self.fn + self.tn


@dataclass(frozen=True)
class MetricsRecord:
    """
    Classification quality of one prediction vector:
    - sensitivity: TP / (TP + FN), share of positives that were flagged
    - specificity: TN / (TN + FP), share of negatives that were left alone
    - precision: TP / (TP + FP), share of flagged samples that are positive
    - combined_score: sum of the three, NaN as soon as one of them is NaN
    """
    sensitivity: float
    specificity: float
    precision: float
    combined_score: float
    counts: ConfusionCounts

    @property
    def is_defined(self) -> bool:
        return not math.isnan(self.combined_score)

    def as_row(self) -> Dict[str, float]:
        return {
            "sensitivity": self.sensitivity,
            "specificity": self.specificity,
            "precision": self.precision,
            "combined_score": self.combined_score,
            "tp": self.counts.tp,
            "fp": self.counts.fp,
            "fn": self.counts.fn,
            "tn": self.counts.tn,
        }


# Check that a sequence is a non-empty 1-D vector of 0/1 values and return it as an int array
def as_binary_vector(values, name: str) -> np.ndarray:
    arr = np.asarray(values)
    if arr.ndim != 1:
        raise InvalidArgument(f"'{name}' must be one-dimensional, got shape {arr.shape}")
    if arr.size == 0:
        raise InvalidArgument(f"'{name}' must not be empty")
    if not np.isin(arr, (0, 1)).all():
        raise InvalidArgument(f"'{name}' must only contain 0/1 values, found {sorted(set(np.unique(arr).tolist()) - {0, 1})}")
    return arr.astype(int)


# Ratio that stays undefined (NaN) instead of defaulting when the denominator is zero
def _ratio(numerator: int, denominator: int) -> float:
    if denominator == 0:
        return float("nan")
    return numerator / denominator


# Count true/false positives and negatives of predictions against labels
def confusion_counts(predictions, labels) -> ConfusionCounts:
    pred = as_binary_vector(predictions, "predictions")
    true = as_binary_vector(labels, "labels")
    if pred.shape != true.shape:
        raise InvalidArgument(f"predictions ({pred.size}) and labels ({true.size}) must have the same length")

    return ConfusionCounts(
        tp=int(((pred == 1) & (true == 1)).sum()),
        fp=int(((pred == 1) & (true == 0)).sum()),
        fn=int(((pred == 0) & (true == 1)).sum()),
        tn=int(((pred == 0) & (true == 0)).sum()),
    )


# Compute sensitivity, specificity, precision and their sum for one prediction vector
def score_predictions(predictions, labels) -> MetricsRecord:
    """Score a binary prediction vector against binary labels. Undefined metrics propagate as NaN."""
    counts = confusion_counts(predictions, labels)

    sensitivity = _ratio(counts.tp, counts.tp + counts.fn)
    specificity = _ratio(counts.tn, counts.tn + counts.fp)
    precision = _ratio(counts.tp, counts.tp + counts.fp)

    # NaN + x is NaN, so an undefined term leaves the combined score undefined
    combined = sensitivity + specificity + precision

    if math.isnan(combined):
        logger.debug("Undefined metric for counts %s (sensitivity=%s, specificity=%s, precision=%s)",
                     counts, sensitivity, specificity, precision)

    return MetricsRecord(
        sensitivity=sensitivity,
        specificity=specificity,
        precision=precision,
        combined_score=combined,
        counts=counts,
    )


# Decide whether a candidate combined score replaces the incumbent; NaN never wins, ties keep the incumbent
def is_better(candidate: float, incumbent: Optional[float]) -> bool:
    if candidate is None or math.isnan(candidate):
        return False
    if incumbent is None or math.isnan(incumbent):
        return True
    return candidate > incumbent
