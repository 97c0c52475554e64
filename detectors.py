'''
              =====================================================   DETECTORS AND CLUSTER STATISTICS MODULE   ====================================================

'''


'''
This module wraps the scikit-learn estimators evaluated by the pipeline behind one calling convention, assign(features, params), so the parameter
search can drive any of them. It also provides the statistics reported for the best clustering of each search.

Supported detectors:
 - KMeans (group ids)
 - Agglomerative clustering with a configurable linkage (group ids)
 - DBSCAN density clustering, noise labelled -1 (group ids)
 - Distance to the k-th nearest neighbor (continuous outlier score)
 - Isolation Forest (continuous outlier score, higher = more anomalous)

Cluster statistics:
 - Silhouette / Calinski-Harabasz / Davies-Bouldin on non-noise points
 - Fisher's exact test of positive-label enrichment per cluster, Bonferroni corrected
'''

from imports import *
from hyperparameters import RANDOM_STATE

logger = logging.getLogger("DETECTORS")


# ------------------------------------------------------
#          CLUSTERING DETECTORS (GROUP IDS)
# ------------------------------------------------------

# KMeans partition into params['n_clusters'] groups
def kmeans_assign(features: np.ndarray, params: Dict[str, Any]) -> np.ndarray:
    logger.debug("KMeans clustering for k=%d ...", params["n_clusters"])
    km = KMeans(n_clusters=int(params["n_clusters"]), random_state=RANDOM_STATE, n_init=10)
    return km.fit_predict(features)


# Agglomerative clustering into params['n_clusters'] groups with params['linkage'] (default 'ward') on euclidean distances
def agglomerative_assign(features: np.ndarray, params: Dict[str, Any]) -> np.ndarray:
    logger.debug("Agglomerative clustering (%s) for k=%d ...", params.get("linkage", "ward"), params["n_clusters"])
    model = AgglomerativeClustering(
        n_clusters=int(params["n_clusters"]),
        linkage=params.get("linkage", "ward"),
        metric="euclidean",
    )
    return model.fit_predict(features)


# DBSCAN with radius params['eps'] and params['min_samples']; noise points are labelled -1
def dbscan_assign(features: np.ndarray, params: Dict[str, Any]) -> np.ndarray:
    logger.debug("DBSCAN for eps=%.3f, min_samples=%d ...", params["eps"], params["min_samples"])
    db = DBSCAN(eps=float(params["eps"]), min_samples=int(params["min_samples"]), metric="euclidean")
    return db.fit_predict(features)


# ------------------------------------------------------
#          OUTLIER DETECTORS (CONTINUOUS SCORES)
# ------------------------------------------------------

# Distance of each sample to its params['n_neighbors']-th nearest neighbor, the sample itself excluded
def knn_distance_scores(features: np.ndarray, params: Dict[str, Any]) -> np.ndarray:
    k = int(params["n_neighbors"])
    if k < 1 or k >= len(features):
        raise ValueError(f"n_neighbors must be between 1 and {len(features) - 1}, got {k}")
    nbrs = NearestNeighbors(n_neighbors=k + 1).fit(features)
    dists = nbrs.kneighbors(features)[0]
    return dists[:, -1]


# Isolation Forest anomaly score, sign flipped so that larger values are more anomalous
def isolation_forest_scores(features: np.ndarray, params: Dict[str, Any]) -> np.ndarray:
    forest = IsolationForest(
        n_estimators=int(params.get("n_estimators", 100)),
        contamination="auto",
        random_state=RANDOM_STATE,
    )
    forest.fit(features)
    return -forest.score_samples(features)


# Compute sorted k-nearest neighbor distances for each sample, used to pick the DBSCAN radius range (elbow)
def kdist_sorted(X: np.ndarray, k: int = 5) -> np.ndarray:
    """Return the sorted k-th NN distance for each sample (for elbow plot)."""
    nbrs = NearestNeighbors(n_neighbors=k).fit(X)
    dists = nbrs.kneighbors(X)[0][:, -1]
    return np.sort(dists)


# ------------------------------------------------------
#          CLUSTER STATISTICS FOR THE BEST RUN
# ------------------------------------------------------

# Silhouette/Calinski-Harabasz/Davies-Bouldin scores on non-noise points, NaN when fewer than two clusters remain
def cluster_validity(features: np.ndarray, assignment: np.ndarray) -> Dict[str, float]:
    assignment = np.asarray(assignment)
    valid_mask = assignment != -1
    n_clusters = np.unique(assignment[valid_mask]).size

    if valid_mask.sum() > n_clusters > 1:
        X = features[valid_mask]
        labels = assignment[valid_mask]
        sil = silhouette_score(X, labels)
        ch = calinski_harabasz_score(X, labels)
        dbi = davies_bouldin_score(X, labels)
    else:
        sil = ch = dbi = np.nan

    return {
        "silhouette": float(sil),
        "calinski_harabasz": float(ch),
        "davies_bouldin": float(dbi),
        "n_clusters": int(n_clusters),
        "n_noise": int((~valid_mask).sum()),
    }


# Run Fisher's exact test to assess whether each cluster is enriched in positive labels compared to the rest
def run_fisher_test(assignment, labels) -> pd.DataFrame:
    """
    One-sided Fisher's exact test per cluster (cluster vs. rest, alternative='greater'),
    followed by Bonferroni correction over all clusters.
    """
    assignment = np.asarray(assignment)
    labels = np.asarray(labels)

    p_vals = []
    clusters = np.unique(assignment)
    for cid in clusters:
        in_c = assignment == cid
        target_in = labels[in_c]
        target_out = labels[~in_c]

        a = (target_in == 1).sum(); b = (target_out == 1).sum()
        c = (target_in == 0).sum(); d = (target_out == 0).sum()

        _, p = fisher_exact([[a, b], [c, d]], alternative="greater")
        p_vals.append(p)

    # Multiple testing correction (Bonferroni)
    rejected, pvals_corr, _, _ = multipletests(p_vals, method="bonferroni")

    return pd.DataFrame({
        "Cluster": clusters,
        "Raw_p_value": p_vals,
        "Corrected_p_value": pvals_corr,
        "Significant_after_correction": rejected,
    })
