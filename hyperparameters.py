'''
             ============================================   HYPERPARAMETER SETTINGS FOR DETECTOR EVALUATION   ===========================================
'''


"""
This module defines all global experimental settings and configuration flags for the evaluation pipeline. Parameters included here control:

- Which dataset is loaded and which column holds the ground-truth label
- The feature space the detectors run on (scaled features or their PCA projection)
- The decision policy constants that turn cluster assignments into positive/negative predictions
- The parameter grids swept for every detector
- Execution flags for selectively enabling/disabling each detector block

Edit values here to rerun experiments without modifying algorithm logic elsewhere.

"""

# Path to the labeled table (30 numeric feature columns + 1 label column). None loads scikit-learn's bundled breast-cancer table.
DATA_PATH = None

# Name of the ground-truth column in DATA_PATH. String labels are mapped with POSITIVE_LABEL_VALUES (e.g. 'M' for malignant).
LABEL_COL = "diagnosis"
POSITIVE_LABEL_VALUES = ("M", "1", 1, True)

# Columns dropped before scaling (identifiers, empty trailing columns of CSV exports)
DROP_COLS = ["id", "Unnamed: 32"]

# Seed shared by every stochastic detector (KMeans, Isolation Forest) and PCA
RANDOM_STATE = 42

# Number of principal components kept in the reduced representation
PCA_COMPONENTS = 2

# Feature space handed to the detectors: "scaled" (all features) or "pca" (PCA_COMPONENTS columns)
FEATURE_SPACE = "scaled"


#   -----------------------------------------
#           DECISION POLICY CONSTANTS
#   -----------------------------------------

# Cluster policy: the groups with the highest positive counts are always declared positive
TOP_N_CLUSTERS = 2

# Cluster policy: groups whose positive proportion reaches this value are declared positive too
POSITIVE_PROPORTION_THR = 0.25


#   -----------------------------------------
#               PARAMETER GRIDS
#   -----------------------------------------

# Range of cluster numbers ("k") for KMeans and Agglomerative clustering
K_RANGE = range(2, 11)

# Linkage criteria crossed with K_RANGE for Agglomerative clustering
LINKAGES = ["ward", "complete", "average", "single"]

# DBSCAN radius: evenly spaced between these percentiles of the sorted k-distance curve
EPS_PERCENTILES = (5, 95)
EPS_STEPS = 15

# DBSCAN minimum neighborhood sizes
MIN_SAMPLES_RANGE = range(3, 11)

# Neighbor used for the k-NN distance score (also the elbow neighbor for DBSCAN)
KNN_NEIGHBORS = 5

# Number of evenly spaced thresholds between the min and max observed outlier score
THRESHOLD_STEPS = 100

# Worker threads per search; 1 keeps the sweep sequential
N_JOBS = 1


#   -----------------------------------------
#                  OUTPUTS
#   -----------------------------------------

# Folder where search histories, plots and the final summary are written
OUTPUT_FOLDER = "evaluation_results"


# Run all detector blocks if True; if False, use RUN_FLAGS below for selective activation.
RUN_ALL = False

#   -----------------------------------------
#           DETECTOR BLOCK SELECTION
#   -----------------------------------------

RUN_FLAGS = {

    # KMeans over K_RANGE, cluster policy
    "KMEANS": True,

    # Agglomerative clustering over K_RANGE x LINKAGES, cluster policy
    "AGGLOMERATIVE": True,

    # DBSCAN over eps x min_samples, noise points (-1) are the positives
    "DBSCAN": True,

    # Distance to the KNN_NEIGHBORS-th neighbor, threshold sweep
    "KNN_DISTANCE": True,

    # Isolation Forest anomaly score, threshold sweep
    "ISOLATION_FOREST": True,

}
