'''
                ======================================================   MAIN PIPELINE MODULE   ==================================================
'''

"""
This is the primary pipeline script for the project. It orchestrates the end-to-end evaluation of unsupervised detectors against the labeled
health-record table.

Key responsibilities include:
- Loading the labeled table, scaling the features and computing their PCA projection.
- Running a flag-driven set of detector blocks (KMeans, Agglomerative, DBSCAN, k-NN distance, Isolation Forest). Each block builds its parameter
  grid, sweeps it with the parameter search and keeps the setting maximizing sensitivity + specificity + precision.
- Saving per-block search histories, sweep plots, PCA scatters of the best predictions and, for clustering blocks, the best run's cluster
  summary with Fisher's exact test of positive-label enrichment.
- Ranking the best setting of every block in a final detector summary.
"""



#   ================================================================= IMPORTS AND CONFIGURATION ============================================================================

from hyperparameters import *         # Import all evaluation settings and pipeline flags
import utils                          # Import utility functions (data loading, outputs, plots)
from imports import *                 # Import packages (pandas, numpy, etc.)
from errors import NoValidConfiguration
from prediction import Clustering, ExplicitLabel, ScoreThreshold, cluster_summary
from parameter_search import ParameterGrid, run_parameter_search
from detectors import (
    kmeans_assign, agglomerative_assign, dbscan_assign, knn_distance_scores, isolation_forest_scores,
    kdist_sorted, cluster_validity, run_fisher_test,
)


logger = logging.getLogger('MAIN')


#   ====================================================================== BLOCK HELPERS ====================================================================================

# Save history, plots and (for cluster detectors) cluster statistics of one finished search
def report_block(result, dataset, features, block_dir, sweep_params, cluster_output=False):
    utils.save_search_history(result, block_dir)

    if len(sweep_params) == 1:
        utils.plot_and_save_sweep(result, sweep_params[0], filename="sweep.png", folder=block_dir)
    else:
        utils.plot_and_save_sweep_heatmap(result, sweep_params[0], sweep_params[1], filename="sweep_heatmap.png", folder=block_dir)

    utils.plot_and_save_predictions(
        dataset, result.best_predictions,
        title=f"{result.label} {result.best_params}",
        filename="best_predictions_pca.png",
        folder=block_dir,
    )

    if cluster_output:
        summary = cluster_summary(result.best_assignment, dataset.labels)
        summary["predicted_positive"] = [
            bool(result.best_predictions[result.best_assignment == g].any()) for g in summary["group"]
        ]
        summary.to_csv(os.path.join(block_dir, "best_cluster_summary.csv"), index=False)
        logger.info("%s cluster summary for %s:\n%s\n", result.label, result.best_params, summary)

        validity = cluster_validity(features, result.best_assignment)
        logger.info("%s cluster validity: %s", result.label, validity)

        fisher_df = run_fisher_test(result.best_assignment, dataset.labels)
        fisher_df.to_csv(os.path.join(block_dir, "best_fisher_test.csv"), index=False)
        logger.info("%s Fisher results:\n%s\n", result.label, fisher_df)


# Run one search and report it; a grid without any valid configuration is logged and skipped
def run_block(name, detector, grid, kind, dataset, features, sweep_params, cluster_output=False):
    block_dir = os.path.join(OUTPUT_FOLDER, name)
    try:
        result = run_parameter_search(detector, grid, kind, dataset, features=features, n_jobs=N_JOBS, label=name, logger=logger)
    except NoValidConfiguration as exc:
        logger.error("%s: %s", name, exc)
        return None

    report_block(result, dataset, features, block_dir, sweep_params, cluster_output=cluster_output)
    return result


#    ==================================================================== DETECTOR EVALUATION =======================================================================

def run_evaluation(dataset):

    """
    Executes every enabled detector block on the configured feature space and returns the list of search results.
    """

    features = dataset.space(FEATURE_SPACE)
    results = []

# ==================================================
#     K-MEANS Clustering, cluster policy
# ==================================================

    if utils.should_run("KMEANS", RUN_ALL, RUN_FLAGS):
        grid = ParameterGrid.cartesian(n_clusters=list(K_RANGE))
        results.append(run_block("KMEANS", kmeans_assign, grid, Clustering(), dataset, features,
                                 sweep_params=["n_clusters"], cluster_output=True))

# ==================================================
#     Agglomerative Clustering, k x linkage
# ==================================================

    if utils.should_run("AGGLOMERATIVE", RUN_ALL, RUN_FLAGS):
        grid = ParameterGrid.cartesian(n_clusters=list(K_RANGE), linkage=LINKAGES)
        results.append(run_block("AGGLOMERATIVE", agglomerative_assign, grid, Clustering(), dataset, features,
                                 sweep_params=["n_clusters", "linkage"], cluster_output=True))

# ==================================================
#     DBSCAN, noise points are the positives
# ==================================================

    if utils.should_run("DBSCAN", RUN_ALL, RUN_FLAGS):
        # Radius range taken from the k-distance curve (elbow method)
        kdist = kdist_sorted(features, k=KNN_NEIGHBORS)
        eps_low, eps_high = np.percentile(kdist, EPS_PERCENTILES)
        logger.info("DBSCAN radius range from %d-NN distances: %.3f to %.3f", KNN_NEIGHBORS, eps_low, eps_high)

        grid = ParameterGrid.linspace("eps", eps_low, eps_high, EPS_STEPS).product(
            ParameterGrid.cartesian(min_samples=list(MIN_SAMPLES_RANGE)))
        results.append(run_block("DBSCAN", dbscan_assign, grid, ExplicitLabel(positive_ids=frozenset({-1})), dataset, features,
                                 sweep_params=["eps", "min_samples"], cluster_output=True))

# ==================================================
#     k-NN distance score, threshold sweep
# ==================================================

    if utils.should_run("KNN_DISTANCE", RUN_ALL, RUN_FLAGS):
        params = {"n_neighbors": KNN_NEIGHBORS}
        scores = knn_distance_scores(features, params)
        grid = ParameterGrid.cartesian(**{k: [v] for k, v in params.items()}).product(
            ParameterGrid.from_scores(scores, THRESHOLD_STEPS))
        results.append(run_block("KNN_DISTANCE", knn_distance_scores, grid, ScoreThreshold(), dataset, features,
                                 sweep_params=["threshold"]))

# ==================================================
#     Isolation Forest score, threshold sweep
# ==================================================

    if utils.should_run("ISOLATION_FOREST", RUN_ALL, RUN_FLAGS):
        scores = isolation_forest_scores(features, {})
        grid = ParameterGrid.from_scores(scores, THRESHOLD_STEPS)
        results.append(run_block("ISOLATION_FOREST", isolation_forest_scores, grid, ScoreThreshold(), dataset, features,
                                 sweep_params=["threshold"]))

    return [r for r in results if r is not None]


#   =========================================================================== MAIN DRIVER ================================================================================

def main():

    utils.configure_logging()             # Set up standardized logging format for the pipeline

    logger.info("Feature space: %s, run flags: %s", FEATURE_SPACE, "all" if RUN_ALL else RUN_FLAGS)

    '''
    Load the labeled table, scale it and compute the PCA projection used for plots (and as feature space when FEATURE_SPACE = "pca").
    '''
    dataset = utils.load_dataset(
        DATA_PATH,
        label_col=LABEL_COL,
        positive_values=POSITIVE_LABEL_VALUES,
        drop_cols=DROP_COLS,
        n_components=PCA_COMPONENTS,
        random_state=RANDOM_STATE,
    )

    '''
    Sweep every enabled detector and rank the best setting of each.
    '''
    results = run_evaluation(dataset)
    utils.save_detector_summary(results, OUTPUT_FOLDER)

if __name__ == "__main__":
    main()
