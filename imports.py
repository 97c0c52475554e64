'''
                                 ================================ IMPORTS MODULE =============================
'''

"""
This module serves as the centralized import hub for the external and core Python packages required by the project. It includes standard libraries
(NumPy, pandas), the scikit-learn estimators used as detectors, clustering validity metrics, statistical tests for cluster/outcome association,
plotting libraries, and typing helpers.

All evaluation, search and pipeline modules import from this file so that package requirements have a single source of truth.

"""


# ===================== CORE PYTHON & OS UTILITIES =====================
import numpy as np                    # Numerical computations and arrays
import pandas as pd                   # DataFrame operations and result tables
import math                           # NaN checks on scalar metrics
import time                           # Timing of detector sweeps
import os                             # OS-level operations (file paths, output folders)
import itertools                      # Cartesian products for parameter grids
import threading                      # Per-setting locks of the search score cache
from pathlib import Path              # Object-oriented handling of file system paths
from concurrent.futures import ThreadPoolExecutor   # Optional parallel evaluation of grid points
os.environ["OMP_NUM_THREADS"] = "4"   # Suppress multi-threading OpenMP warnings from KMeans


# ===================== LOGGING =====================
import logging                        # Standard Python event logging system


# ===================== PREPROCESSING & DIMENSIONALITY REDUCTION =====================
from sklearn.preprocessing import StandardScaler   # Zero-mean / unit-variance scaling of the feature table
from sklearn.decomposition import PCA              # Principal component projection for plots and reduced feature space
from sklearn.datasets import load_breast_cancer    # Bundled Wisconsin diagnostic breast-cancer table (30 features)


# ===================== CLUSTERING & OUTLIER DETECTORS =====================
from sklearn.cluster import KMeans, AgglomerativeClustering, DBSCAN   # Partitioning, hierarchical and density clustering
from sklearn.ensemble import IsolationForest                          # Tree-based anomaly scoring
from sklearn.neighbors import NearestNeighbors                        # k-NN distance scores and DBSCAN radius estimation


# ===================== CLUSTERING METRICS/EVALUATION =====================
from sklearn.metrics import silhouette_score, calinski_harabasz_score, davies_bouldin_score  # Clustering validity indices


# ===================== STATISTICAL TESTS =====================
from scipy.stats import fisher_exact                    # Fisher's exact test for cluster/label association
from statsmodels.stats.multitest import multipletests   # Multiple testing correction for p-values


# ===================== VISUALIZATION =====================
import matplotlib
matplotlib.use("Agg")                   # Figures are only written to disk
import matplotlib.pyplot as plt         # Plotting and figure generation
import seaborn as sns                   # Heatmaps for two-parameter sweeps


# ===================== STRUCTURED DATA & TYPING =====================
from dataclasses import dataclass, field, asdict           # Data classes for records and results
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union  # Type hints
