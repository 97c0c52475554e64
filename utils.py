'''
                =========================================================   UTILITIES MODULE   =======================================================

'''


"""
This module provides the supporting routines around the evaluation core:

- Logging configuration shared by every module
- Dataset loading (CSV table or scikit-learn's bundled breast-cancer table), label encoding, scaling and PCA projection
- Run-flag helper deciding which detector blocks execute
- Saving search histories, cluster summaries and the final detector comparison as CSV
- Plots of one- and two-parameter sweeps and of the best predictions in PCA space

"""

from imports import *
from errors import InvalidArgument


logger = logging.getLogger("UTILS")

# Configure logging for the pipeline with the specified verbosity level
def configure_logging(level=logging.INFO):
    logging.basicConfig(
        level=level,
        format='%(asctime)s - [%(name)s] - %(levelname)s - %(message)s')


# ------------------------------------------
#              DATASET CONTAINER
# ------------------------------------------

@dataclass(frozen=True, eq=False)
class Dataset:
    """
    Read-only labeled dataset shared by every detector run:
    - features: scaled feature matrix (samples x features)
    - labels: ground truth, 1 = positive
    - feature_names: column names of features
    - reduced: PCA projection of features (samples x components)
    """
    features: np.ndarray
    labels: np.ndarray
    feature_names: List[str]
    reduced: np.ndarray

    def __post_init__(self):
        if self.features.ndim != 2 or self.features.shape[0] == 0:
            raise InvalidArgument(f"features must be a non-empty 2-D matrix, got shape {self.features.shape}")
        if self.labels.shape != (self.features.shape[0],):
            raise InvalidArgument(f"expected {self.features.shape[0]} labels, got shape {self.labels.shape}")
        if not np.isin(self.labels, (0, 1)).all():
            raise InvalidArgument("labels must only contain 0/1 values")
        if len(self.reduced) != self.features.shape[0]:
            raise InvalidArgument("reduced representation must have one row per sample")

        # Keep private read-only copies so no detector run can change the data seen by the next one
        for name in ("features", "labels", "reduced"):
            arr = np.array(getattr(self, name), copy=True)
            arr.setflags(write=False)
            object.__setattr__(self, name, arr)

    def __len__(self) -> int:
        return self.features.shape[0]

    @property
    def n_positive(self) -> int:
        return int(self.labels.sum())

    # Feature space selected by the FEATURE_SPACE setting
    def space(self, name: str) -> np.ndarray:
        if name == "scaled":
            return self.features
        if name == "pca":
            return self.reduced
        raise InvalidArgument(f"unknown feature space '{name}', expected 'scaled' or 'pca'")


# Map raw label values onto 0/1 using the set of values that mean "positive"
def encode_labels(raw: pd.Series, positive_values: Iterable) -> np.ndarray:
    positive_values = set(positive_values)
    encoded = raw.map(lambda v: 1 if v in positive_values or str(v).strip() in positive_values else 0)
    return encoded.to_numpy(dtype=int)


# Scale the raw feature table and project it with PCA
def build_dataset(raw_features: pd.DataFrame, labels: np.ndarray, n_components: int = 2, random_state: int = 42) -> Dataset:
    if raw_features.isna().any().any():
        missing = raw_features.columns[raw_features.isna().any()].tolist()
        raise InvalidArgument(f"feature columns contain missing values: {missing}")

    scaled = StandardScaler().fit_transform(raw_features.to_numpy(dtype=float))
    n_components = min(n_components, scaled.shape[1], scaled.shape[0])
    pca = PCA(n_components=n_components, random_state=random_state)
    reduced = pca.fit_transform(scaled)

    logger.info("PCA with %d components explains %.1f%% of the variance.",
                n_components, 100 * pca.explained_variance_ratio_.sum())

    return Dataset(
        features=scaled,
        labels=np.asarray(labels, dtype=int),
        feature_names=list(raw_features.columns),
        reduced=reduced,
    )


# Load the labeled table from a CSV file, or scikit-learn's bundled breast-cancer table when no path is given
def load_dataset(
    path=None,
    label_col: str = "diagnosis",
    positive_values: Iterable = ("M", "1", 1, True),
    drop_cols: Iterable[str] = (),
    n_components: int = 2,
    random_state: int = 42,
) -> Dataset:
    if path is None:
        bundled = load_breast_cancer(as_frame=True)
        raw_features = bundled.data
        # target 0 = malignant in the bundled table
        labels = (bundled.target.to_numpy() == 0).astype(int)
        logger.info("Loaded scikit-learn breast-cancer table.")
    else:
        df = pd.read_csv(path)
        if label_col not in df.columns:
            raise InvalidArgument(f"label column '{label_col}' not found in {path}")
        labels = encode_labels(df[label_col], positive_values)
        raw_features = df.drop(columns=[label_col] + [c for c in drop_cols if c in df.columns])
        raw_features = raw_features.select_dtypes(include="number")
        logger.info("Loaded %s.", path)

    dataset = build_dataset(raw_features, labels, n_components=n_components, random_state=random_state)
    logger.info("Dataset: %d samples, %d features, %d positives (%.1f%%).\n",
                len(dataset), dataset.features.shape[1], dataset.n_positive, 100 * dataset.n_positive / len(dataset))
    return dataset


def should_run(name: str, run_all: bool, flags: dict[str, bool]) -> bool:
    return run_all or flags.get(name, False)


# ------------------------------------------
#                 CSV OUTPUTS
# ------------------------------------------

# Save the per-tuple search history of one detector block as CSV
def save_search_history(result, folder: str, filename: str = "search_history.csv") -> str:
    os.makedirs(folder, exist_ok=True)
    save_path = os.path.join(folder, filename)
    result.history_frame().to_csv(save_path, index=False)
    logger.info("Search history of %s saved to %s", result.label, save_path)
    return save_path


# Rank the best result of every detector block by combined score and save it as CSV
def save_detector_summary(results: list, folder: str, filename: str = "detector_summary.csv") -> pd.DataFrame:
    os.makedirs(folder, exist_ok=True)
    summary = pd.DataFrame([r.summary_row() for r in results])
    if not summary.empty:
        summary = summary.sort_values("combined_score", ascending=False, kind="mergesort").reset_index(drop=True)
    save_path = os.path.join(folder, filename)
    summary.to_csv(save_path, index=False)
    logger.info("Detector summary saved to %s:\n%s\n", save_path, summary)
    return summary


# ------------------------------------------
#                    PLOTS
# ------------------------------------------

# Plot sensitivity, specificity, precision and combined score against the swept parameter of a 1-D search
def plot_and_save_sweep(result, param: str, filename: str, folder: str = "evaluation_results"):
    os.makedirs(folder, exist_ok=True)
    save_path = os.path.join(folder, filename)

    history = result.history_frame()
    history = history[history["status"] != "failed"].sort_values(param)

    fig, axes = plt.subplots(1, 2, figsize=(12, 4.5))

    for metric, color in [("sensitivity", "red"), ("specificity", "blue"), ("precision", "green")]:
        axes[0].plot(history[param], history[metric], marker=".", color=color, label=metric)
    axes[0].set_xlabel(param)
    axes[0].set_ylim(-0.05, 1.05)
    axes[0].set_title("Classification metrics")
    axes[0].legend()
    axes[0].grid(True)

    axes[1].plot(history[param], history["combined_score"], marker=".", color="black")
    axes[1].axvline(result.best_params[param], linestyle="--", color="grey")
    axes[1].set_xlabel(param)
    axes[1].set_title(f"Combined score (best {param}={result.best_params[param]:.4g})")
    axes[1].grid(True)

    fig.suptitle(result.label)
    fig.tight_layout()
    fig.savefig(save_path, dpi=200, bbox_inches='tight')
    plt.close(fig)

    logger.info("Sweep plot '%s' saved to %s", filename, save_path)
    return save_path


# Heatmap of the combined score over a 2-D grid; undefined and failed tuples stay blank
def plot_and_save_sweep_heatmap(result, row_param: str, col_param: str, filename: str, folder: str = "evaluation_results"):
    os.makedirs(folder, exist_ok=True)
    save_path = os.path.join(folder, filename)

    history = result.history_frame()
    if "combined_score" not in history.columns:
        history["combined_score"] = np.nan
    table = history.pivot_table(index=row_param, columns=col_param, values="combined_score", aggfunc="first", dropna=False)
    if table.index.dtype.kind == "f":
        table.index = [f"{v:.3g}" for v in table.index]

    plt.figure(figsize=(1.0 + 0.7 * table.shape[1], 1.0 + 0.45 * table.shape[0]))
    sns.heatmap(table, annot=True, fmt=".2f", cmap="viridis", cbar_kws={"label": "combined score"})
    plt.title(f"{result.label}: best {result.best_params}")
    plt.tight_layout()
    plt.savefig(save_path, dpi=200, bbox_inches='tight')
    plt.close()

    logger.info("Sweep heatmap '%s' saved to %s", filename, save_path)
    return save_path


# Scatter the samples in PCA space, colored by prediction, with positive labels outlined
def plot_and_save_predictions(dataset: Dataset, predictions: np.ndarray, title: str, filename: str, folder: str = "evaluation_results"):
    os.makedirs(folder, exist_ok=True)
    save_path = os.path.join(folder, filename)

    reduced = dataset.reduced
    y = reduced[:, 1] if reduced.shape[1] > 1 else np.zeros(len(reduced))

    plt.figure(figsize=(7, 6))
    sns.scatterplot(x=reduced[:, 0], y=y, hue=np.where(predictions == 1, "predicted positive", "predicted negative"),
                    palette={"predicted positive": "tab:red", "predicted negative": "tab:blue"}, s=25, alpha=0.7)
    positive = dataset.labels == 1
    plt.scatter(reduced[positive, 0], y[positive], facecolors="none", edgecolors="black", s=45, linewidths=0.6, label="true positive label")
    plt.xlabel("PC1")
    plt.ylabel("PC2")
    plt.title(title)
    plt.legend(loc="best")
    plt.tight_layout()
    plt.savefig(save_path, dpi=200)
    plt.close()

    logger.info("Prediction scatter '%s' saved to %s", filename, save_path)
    return save_path
