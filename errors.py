'''
                ======================================================   ERRORS MODULE   ======================================================
'''

"""
Exception types shared by the prediction mapping, scoring and parameter search modules.
"""


class InvalidArgument(ValueError):
    """Malformed input to a mapper or scorer: empty or mismatched sequences, non-binary values, missing positive set."""


class DetectorInvocationFailure(RuntimeError):
    """An external detector raised for one parameter tuple. Recorded by the search, which then moves on."""

    def __init__(self, params, cause):
        self.params = dict(params)
        self.cause = cause
        super().__init__(f"Detector failed for {self.params}: {type(cause).__name__}: {cause}")


class NoValidConfiguration(RuntimeError):
    """Every tuple of a parameter grid either failed or produced an undefined combined score."""

    def __init__(self, label, n_attempted, n_nan, failures):
        self.label = label
        self.n_attempted = n_attempted
        self.n_nan = n_nan
        self.failures = list(failures)
        failure_classes = sorted({type(f.cause).__name__ for f in self.failures})
        super().__init__(
            f"No valid configuration for '{label}': {n_attempted} tuples attempted, "
            f"{n_nan} gave an undefined (NaN) combined score, {len(self.failures)} raised in the detector"
            + (f" ({', '.join(failure_classes)})" if failure_classes else "")
        )
