'''
              =====================================================   PARAMETER SEARCH MODULE   ====================================================
'''


'''
This module sweeps the free parameters of one detector over a fixed grid and keeps the setting with the highest combined score.

 - ParameterGrid: ordered axes, enumerated as their full Cartesian product (first axis outermost). 1-D sweeps are single-axis grids.
 - run_parameter_search: invokes the detector for every tuple, maps its output to predictions, scores them and folds the
   evaluations into a running best. The whole grid is always evaluated; ties keep the tuple found first.
 - Detector errors for a single tuple are recorded and skipped. When no tuple yields a defined combined score the search
   raises NoValidConfiguration.

Grid points can be evaluated on a thread pool (n_jobs > 1), one window of n_jobs tuples at a time. Evaluations are folded in grid
order as they arrive, so the result is the same as the sequential sweep and losing detector outputs are released immediately.
'''

from imports import *
from errors import InvalidArgument, DetectorInvocationFailure, NoValidConfiguration
from metrics import MetricsRecord, score_predictions, is_better
from prediction import DetectorKind, ScoreThreshold, to_predictions

Detector = Callable[[np.ndarray, Dict[str, Any]], np.ndarray]


# ------------------------------------------
#               PARAMETER GRID
# ------------------------------------------

class ParameterGrid:
    """Finite, ordered enumeration of parameter tuples built from named axes."""

    def __init__(self, axes: Mapping[str, Sequence[Any]]):
        if not axes:
            raise InvalidArgument("a parameter grid needs at least one axis")
        self.axes: Dict[str, List[Any]] = {}
        for name, values in axes.items():
            values = list(values)
            if not values:
                raise InvalidArgument(f"grid axis '{name}' has no values")
            self.axes[name] = values

    # Evenly spaced values of one parameter between start and stop (both included)
    @classmethod
    def linspace(cls, name: str, start: float, stop: float, steps: int) -> "ParameterGrid":
        if steps < 1:
            raise InvalidArgument(f"steps must be at least 1, got {steps}")
        return cls({name: np.linspace(start, stop, steps).tolist()})

    @classmethod
    def cartesian(cls, **axes: Sequence[Any]) -> "ParameterGrid":
        return cls(axes)

    # Threshold axis spanning the observed score range
    @classmethod
    def from_scores(cls, scores, steps: int, name: str = "threshold") -> "ParameterGrid":
        values = np.asarray(scores, dtype=float)
        values = values[np.isfinite(values)]
        if values.size == 0:
            raise InvalidArgument("cannot derive a threshold range from an empty or non-finite score vector")
        return cls.linspace(name, float(values.min()), float(values.max()), steps)

    # Extend this grid with additional axes (inner to the existing ones)
    def product(self, other: "ParameterGrid") -> "ParameterGrid":
        overlap = set(self.axes) & set(other.axes)
        if overlap:
            raise InvalidArgument(f"grid axes overlap: {sorted(overlap)}")
        return ParameterGrid({**self.axes, **other.axes})

    @property
    def names(self) -> List[str]:
        return list(self.axes)

    @property
    def ndim(self) -> int:
        return len(self.axes)

    def __len__(self) -> int:
        return int(np.prod([len(v) for v in self.axes.values()]))

    def __iter__(self) -> Iterator[Dict[str, Any]]:
        for combo in itertools.product(*self.axes.values()):
            yield dict(zip(self.axes, combo))

    def __repr__(self) -> str:
        shape = " x ".join(f"{name}[{len(values)}]" for name, values in self.axes.items())
        return f"ParameterGrid({shape})"


# ------------------------------------------
#        DATA CONTAINERS FOR SEARCH RESULTS
# ------------------------------------------

@dataclass
class Evaluation:
    """Outcome of one grid point: metrics when the detector ran, failure when it raised."""
    index: int
    params: Dict[str, Any]
    metrics: Optional[MetricsRecord] = None
    failure: Optional[DetectorInvocationFailure] = None
    assignment: Optional[np.ndarray] = None
    predictions: Optional[np.ndarray] = None

    @property
    def status(self) -> str:
        if self.failure is not None:
            return "failed"
        return "ok" if self.metrics.is_defined else "nan"


@dataclass
class SearchResult:
    label: str
    best_params: Dict[str, Any]
    best_metrics: MetricsRecord
    best_assignment: np.ndarray
    best_predictions: np.ndarray
    evaluations: List[Evaluation] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def n_attempted(self) -> int:
        return len(self.evaluations)

    @property
    def n_nan(self) -> int:
        return sum(e.status == "nan" for e in self.evaluations)

    @property
    def n_failed(self) -> int:
        return sum(e.status == "failed" for e in self.evaluations)

    # One row per grid point with its parameters, metrics and status
    def history_frame(self) -> pd.DataFrame:
        rows = []
        for e in self.evaluations:
            row = dict(e.params)
            if e.metrics is not None:
                row.update(e.metrics.as_row())
            row["status"] = e.status
            row["error"] = str(e.failure.cause) if e.failure is not None else ""
            rows.append(row)
        return pd.DataFrame(rows)

    def summary_row(self) -> Dict[str, Any]:
        row = {"detector": self.label, "best_params": self.best_params}
        row.update(self.best_metrics.as_row())
        row.update({"n_attempted": self.n_attempted, "n_nan": self.n_nan, "n_failed": self.n_failed})
        return row


# ------------------------------------------------------
#                  GRID EVALUATION
# ------------------------------------------------------


class _ScoreCache:
    """
    Scores of a score-threshold detector, computed once per distinct non-threshold parameter set.
    A detector error is cached too and re-raised for every threshold of that parameter set.
    """

    def __init__(self, detector: Detector, threshold_param: str):
        self.detector = detector
        self.threshold_param = threshold_param
        self._outcomes: Dict[Tuple, Any] = {}
        self._key_locks: Dict[Tuple, threading.Lock] = {}
        self._lock = threading.Lock()

    def __call__(self, features: np.ndarray, params: Dict[str, Any]) -> np.ndarray:
        detector_params = {k: v for k, v in params.items() if k != self.threshold_param}
        key = tuple(sorted(detector_params.items()))

        # The shared lock only guards the lock table; different parameter sets are scored concurrently
        with self._lock:
            key_lock = self._key_locks.setdefault(key, threading.Lock())

        with key_lock:
            if key not in self._outcomes:
                try:
                    self._outcomes[key] = np.asarray(self.detector(features, detector_params))
                except Exception as exc:
                    self._outcomes[key] = exc
            outcome = self._outcomes[key]

        if isinstance(outcome, Exception):
            raise outcome
        return outcome


# Run the detector for one tuple, then map and score its output
def _evaluate(index: int, params: Dict[str, Any], detector: Detector, kind: DetectorKind,
              features: np.ndarray, labels: np.ndarray) -> Evaluation:
    try:
        assignment = np.asarray(detector(features, params))
    except Exception as exc:
        return Evaluation(index=index, params=params, failure=DetectorInvocationFailure(params, exc))

    predictions = to_predictions(kind, assignment, labels, params)
    metrics = score_predictions(predictions, labels)
    return Evaluation(index=index, params=params, metrics=metrics, assignment=assignment, predictions=predictions)


# Yield evaluations in grid order; the thread pool works through the grid one window of n_jobs tuples at a time
def _iter_evaluations(tuples, detector, kind, features, labels, n_jobs: int) -> Iterator[Evaluation]:
    if n_jobs <= 1:
        for i, params in tuples:
            yield _evaluate(i, params, detector, kind, features, labels)
        return

    with ThreadPoolExecutor(max_workers=n_jobs) as pool:
        for start in range(0, len(tuples), n_jobs):
            window = tuples[start:start + n_jobs]
            # map yields in submission order
            yield from pool.map(lambda item: _evaluate(item[0], item[1], detector, kind, features, labels), window)


# Sweep a detector over a parameter grid and keep the tuple with the highest combined score
def run_parameter_search(
    detector: Detector,
    grid: ParameterGrid,
    kind: DetectorKind,
    dataset,
    features: Optional[np.ndarray] = None,
    n_jobs: int = 1,
    label: str = "",
    logger: logging.Logger | None = None,
) -> SearchResult:
    """
    detector is called as detector(features, params) for every tuple of the grid and must return one group id
    or score per sample. features defaults to dataset.features. Returns the best tuple with its metrics, the
    detector output and predictions that produced it, and the evaluation of every grid point.
    Only the current best evaluation keeps its detector output while the sweep runs.
    """
    log = logger or logging.getLogger("SEARCH")
    label = label or getattr(detector, "__name__", "detector")
    features = dataset.features if features is None else features
    labels = np.asarray(dataset.labels)

    if len(features) != len(labels):
        raise InvalidArgument(f"features ({len(features)}) and labels ({len(labels)}) must have the same length")

    if isinstance(kind, ScoreThreshold):
        if kind.threshold_param not in grid.axes:
            raise InvalidArgument(f"score threshold search needs a '{kind.threshold_param}' grid axis, got {grid.names}")
        detector = _ScoreCache(detector, kind.threshold_param)

    log.info("%s: searching %d tuples over %r ...", label, len(grid), grid)
    start = time.time()

    evaluations: List[Evaluation] = []
    best: Optional[Evaluation] = None
    logged_causes = set()

    for e in _iter_evaluations(list(enumerate(grid)), detector, kind, features, labels, n_jobs):
        evaluations.append(e)

        if e.failure is not None:
            # A cached score failure is the same exception object for every threshold; warn once
            if id(e.failure.cause) in logged_causes:
                log.debug("%s: skipping %s (%s)", label, e.params, e.failure)
            else:
                logged_causes.add(id(e.failure.cause))
                log.warning("%s: skipping %s (%s)", label, e.params, e.failure)
            continue

        log.debug("%s: %s -> combined score %.4f", label, e.params, e.metrics.combined_score)
        if is_better(e.metrics.combined_score, best.metrics.combined_score if best else None):
            if best is not None:
                best.assignment = best.predictions = None
            best = e
        else:
            e.assignment = e.predictions = None

    elapsed = time.time() - start
    failures = [e.failure for e in evaluations if e.failure is not None]
    n_nan = sum(e.status == "nan" for e in evaluations)

    if best is None:
        raise NoValidConfiguration(label, len(evaluations), n_nan, failures)

    log.info("%s: best %s with combined score %.4f (sensitivity=%.3f, specificity=%.3f, precision=%.3f) "
             "in %.1f s; %d undefined, %d failed",
             label, best.params, best.metrics.combined_score, best.metrics.sensitivity,
             best.metrics.specificity, best.metrics.precision, elapsed, n_nan, len(failures))

    return SearchResult(
        label=label,
        best_params=dict(best.params),
        best_metrics=best.metrics,
        best_assignment=best.assignment,
        best_predictions=best.predictions,
        evaluations=evaluations,
        elapsed=elapsed,
    )
