'''
              =====================================================   PREDICTION MAPPER MODULE   ====================================================
'''


'''
This module turns the raw output of an unsupervised detector into a binary prediction vector (1 = positive, 0 = negative).

Supported decision policies:
 - Cluster policy: the groups holding the most positives, plus every group with a high enough positive proportion, are declared positive
 - Explicit-label policy: the caller names the positive groups, or the inlier groups whose complement is positive
 - Score threshold: continuous outlier scores above a threshold are positive

The policy of a detector is carried by a DetectorKind value (Clustering, ExplicitLabel or ScoreThreshold) and dispatched by to_predictions.
'''

from imports import *
from errors import InvalidArgument
from hyperparameters import TOP_N_CLUSTERS, POSITIVE_PROPORTION_THR

logger = logging.getLogger("PREDICTION")


# ------------------------------------------
#        DETECTOR KINDS (DECISION POLICY)
# ------------------------------------------

@dataclass(frozen=True)
class Clustering:
    """Group-id output scored with the cluster policy."""
    top_n: int = TOP_N_CLUSTERS
    proportion_threshold: float = POSITIVE_PROPORTION_THR


@dataclass(frozen=True)
class ExplicitLabel:
    """
    Group-id output with a positive set known in advance. Give exactly one of:
    - positive_ids: the groups that are positive (e.g. {1}, or {-1} for DBSCAN noise)
    - inlier_ids: the groups that are negative; every other group is positive
    """
    positive_ids: Optional[frozenset] = None
    inlier_ids: Optional[frozenset] = None


@dataclass(frozen=True)
class ScoreThreshold:
    """Continuous score output; the grid axis named threshold_param holds the decision threshold."""
    threshold_param: str = "threshold"


DetectorKind = Union[Clustering, ExplicitLabel, ScoreThreshold]


# Check an assignment vector (and optionally a label vector of the same length) and return it as a 1-D array
def _as_assignment(assignment, labels=None) -> np.ndarray:
    arr = np.asarray(assignment)
    if arr.ndim != 1:
        raise InvalidArgument(f"assignment must be one-dimensional, got shape {arr.shape}")
    if arr.size == 0:
        raise InvalidArgument("assignment must not be empty")
    if labels is not None and len(labels) != arr.size:
        raise InvalidArgument(f"assignment ({arr.size}) and labels ({len(labels)}) must have the same length")
    return arr


# ------------------------------------------------------
#                  CLUSTER POLICY
# ------------------------------------------------------

# Per-group total count, positive count and positive proportion, one row per group id (ascending)
def cluster_summary(assignment, labels) -> pd.DataFrame:
    groups = _as_assignment(assignment, labels)
    true = np.asarray(labels)
    if not np.isin(true, (0, 1)).all():
        raise InvalidArgument("labels must only contain 0/1 values")

    summary = (
        pd.DataFrame({"group": groups, "label": true.astype(int)})
        .groupby("group", sort=True)["label"]
        .agg(count="size", positives="sum")
        .reset_index()
    )
    summary["proportion"] = summary["positives"] / summary["count"]
    return summary


# Derive the positive groups of a clustering: top groups by positive count united with groups above the proportion threshold
def cluster_positive_set(
    assignment,
    labels,
    top_n: int = TOP_N_CLUSTERS,
    proportion_threshold: float = POSITIVE_PROPORTION_THR,
) -> frozenset:
    """
    Ties on positive count are broken by ascending group id, so the lower id wins.
    With fewer than top_n groups every group counts as a top group.
    """
    if top_n < 1:
        raise InvalidArgument(f"top_n must be at least 1, got {top_n}")
    summary = cluster_summary(assignment, labels)

    ranked = summary.sort_values(["positives", "group"], ascending=[False, True])
    top_groups = ranked["group"].head(top_n).tolist()

    threshold_groups = summary.loc[summary["proportion"] >= proportion_threshold, "group"].tolist()

    positive_set = frozenset(top_groups) | frozenset(threshold_groups)
    logger.debug("Cluster policy: top=%s, threshold=%s, positive set=%s", top_groups, threshold_groups, sorted(positive_set))
    return positive_set


def cluster_predictions(assignment, labels, top_n: int = TOP_N_CLUSTERS,
                        proportion_threshold: float = POSITIVE_PROPORTION_THR) -> np.ndarray:
    groups = _as_assignment(assignment, labels)
    positive_set = cluster_positive_set(groups, labels, top_n=top_n, proportion_threshold=proportion_threshold)
    return np.isin(groups, list(positive_set)).astype(int)


# ------------------------------------------------------
#                EXPLICIT-LABEL POLICY
# ------------------------------------------------------

# Flag the samples whose group is in positive_ids, or whose group is not in inlier_ids
def explicit_label_predictions(assignment, positive_ids=None, inlier_ids=None) -> np.ndarray:
    groups = _as_assignment(assignment)

    if (positive_ids is None) == (inlier_ids is None):
        raise InvalidArgument("explicit-label policy needs exactly one of positive_ids or inlier_ids")

    ids = positive_ids if positive_ids is not None else inlier_ids
    ids = list(ids)
    if not ids:
        raise InvalidArgument("explicit-label policy needs a non-empty set of group ids")

    member = np.isin(groups, ids)
    return (member if positive_ids is not None else ~member).astype(int)


# ------------------------------------------------------
#                  SCORE THRESHOLD
# ------------------------------------------------------

# Discretize continuous outlier scores: strictly above the threshold is positive
def threshold_predictions(scores, threshold: float) -> np.ndarray:
    values = _as_assignment(scores).astype(float)
    return (values > threshold).astype(int)


# Map a detector output to predictions with the policy carried by its DetectorKind
def to_predictions(kind: DetectorKind, assignment, labels, params: Optional[Mapping[str, Any]] = None) -> np.ndarray:
    assignment = _as_assignment(assignment, labels)

    if isinstance(kind, Clustering):
        return cluster_predictions(assignment, labels, top_n=kind.top_n, proportion_threshold=kind.proportion_threshold)

    if isinstance(kind, ExplicitLabel):
        return explicit_label_predictions(assignment, positive_ids=kind.positive_ids, inlier_ids=kind.inlier_ids)

    if isinstance(kind, ScoreThreshold):
        if params is None or kind.threshold_param not in params:
            raise InvalidArgument(f"score threshold policy needs a '{kind.threshold_param}' parameter")
        return threshold_predictions(assignment, params[kind.threshold_param])

    raise InvalidArgument(f"Unknown detector kind: {kind!r}")
