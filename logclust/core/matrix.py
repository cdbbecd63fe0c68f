"""
logclust Matrix Layer

Numeric containers consumed by the estimators and the clustering engines.

    DoubleMatrix       - dense rectangular matrix (numpy backed)
    SymmetricMatrix    - square matrix storing only the lower triangle
    CoOccurrenceMatrix - symmetric counts accumulated while streaming
    SimilarityMatrix   - symmetric similarity values, ready for clustering

NaN marks "no data". Consumers exclude it from every sum and count.

A CoOccurrenceMatrix is turned into a SimilarityMatrix by finalize(); the
two share one buffer and the co-occurrence object refuses any further use,
so counts can never be read as similarities by accident.
"""

from abc import ABC, abstractmethod
from typing import Optional, Tuple, Union

import numpy as np

from .exceptions import ConfigurationError, StreamStateError


class AbstractMatrix(ABC):
    """Minimal 2-D matrix contract: get / set / dimensions."""

    @abstractmethod
    def get(self, i: int, j: int) -> float:
        pass

    @abstractmethod
    def set(self, i: int, j: int, value: float) -> None:
        pass

    @property
    @abstractmethod
    def row_num(self) -> int:
        pass

    @property
    @abstractmethod
    def col_num(self) -> int:
        pass

    @abstractmethod
    def set_all(self, value: float) -> None:
        pass

    @abstractmethod
    def to_numpy(self) -> np.ndarray:
        """Return a dense float64 copy of the matrix."""
        pass

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.row_num, self.col_num)

    def _check_index(self, i: int, j: int) -> None:
        if not (0 <= i < self.row_num and 0 <= j < self.col_num):
            raise IndexError(
                f"Index ({i},{j}) out of range for {self.row_num}x{self.col_num} matrix"
            )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.row_num}x{self.col_num})"


class DoubleMatrix(AbstractMatrix):
    """Dense matrix of doubles."""

    def __init__(self, rows: int, cols: Optional[int] = None):
        if cols is None:
            cols = rows
        self._values = np.zeros((rows, cols), dtype=np.float64)

    @classmethod
    def from_array(cls, values) -> "DoubleMatrix":
        arr = np.array(values, dtype=np.float64)
        if arr.ndim != 2:
            raise ConfigurationError(f"Expected a 2-D array, got {arr.ndim} dimensions")
        mat = cls(arr.shape[0], arr.shape[1])
        mat._values = arr
        return mat

    def get(self, i: int, j: int) -> float:
        self._check_index(i, j)
        return float(self._values[i, j])

    def set(self, i: int, j: int, value: float) -> None:
        self._check_index(i, j)
        self._values[i, j] = value

    @property
    def row_num(self) -> int:
        return self._values.shape[0]

    @property
    def col_num(self) -> int:
        return self._values.shape[1]

    def set_all(self, value: float) -> None:
        self._values.fill(value)

    def copy(self) -> "DoubleMatrix":
        return DoubleMatrix.from_array(self._values.copy())

    def get_row(self, i: int) -> np.ndarray:
        """View of row i (writes go through to the matrix)."""
        return self._values[i]

    def to_numpy(self) -> np.ndarray:
        return self._values.copy()


class SymmetricMatrix(AbstractMatrix):
    """
    Square symmetric matrix holding n(n+1)/2 values.

    (i, j) and (j, i) address the same cell, for reads and for writes.
    """

    def __init__(self, n: int, values: Optional[np.ndarray] = None):
        if n < 0:
            raise ConfigurationError(f"Matrix size must be non-negative, got {n}")
        self._n = n
        size = n * (n + 1) // 2
        if values is None:
            values = np.zeros(size, dtype=np.float64)
        elif values.shape != (size,):
            raise ConfigurationError(
                f"Packed buffer of length {values.shape} does not fit a {n}x{n} matrix"
            )
        self._values = values

    @classmethod
    def from_array(cls, values, epsilon: float = 1e-12):
        """Build from a full square array, which must be symmetric within epsilon."""
        arr = np.asarray(values, dtype=np.float64)
        assert_symmetric(arr, epsilon)
        n = arr.shape[0]
        rows, cols = np.tril_indices(n)
        return cls(n, arr[rows, cols].copy())

    def _offset(self, i: int, j: int) -> int:
        self._check_index(i, j)
        if j > i:
            i, j = j, i
        return i * (i + 1) // 2 + j

    def get(self, i: int, j: int) -> float:
        return float(self._values[self._offset(i, j)])

    def set(self, i: int, j: int, value: float) -> None:
        self._values[self._offset(i, j)] = value

    @property
    def row_num(self) -> int:
        return self._n

    @property
    def col_num(self) -> int:
        return self._n

    def set_all(self, value: float) -> None:
        self._values.fill(value)

    def to_numpy(self) -> np.ndarray:
        full = np.zeros((self._n, self._n), dtype=np.float64)
        rows, cols = np.tril_indices(self._n)
        full[rows, cols] = self._values
        full[cols, rows] = self._values
        return full

    def copy(self) -> "SymmetricMatrix":
        return type(self)(self._n, self._values.copy())

    def assign(self, values) -> None:
        """Overwrite every cell in place from a full square array (lower triangle is read)."""
        arr = np.asarray(values, dtype=np.float64)
        if arr.shape != (self._n, self._n):
            raise ConfigurationError(f"Cannot assign a {arr.shape} array to a {self._n}x{self._n} matrix")
        rows, cols = np.tril_indices(self._n)
        self._values[:] = arr[rows, cols]


class SimilarityMatrix(SymmetricMatrix):
    """Symmetric similarity values (for example signed mutual information)."""
    pass


class CoOccurrenceMatrix(SymmetricMatrix):
    """
    Symmetric co-occurrence counts.

    The diagonal holds single-message occurrence counts. Once finalize() has
    handed the buffer over to a SimilarityMatrix, every access raises
    StreamStateError.
    """

    def __init__(self, n: int):
        super().__init__(n)
        self._finalized = False

    def _ensure_open(self) -> None:
        if self._finalized:
            raise StreamStateError("Co-occurrence matrix was already finalized")

    def get(self, i: int, j: int) -> float:
        self._ensure_open()
        return super().get(i, j)

    def set(self, i: int, j: int, value: float) -> None:
        self._ensure_open()
        super().set(i, j, value)

    def add(self, i: int, j: int, count: float) -> None:
        self._ensure_open()
        self._values[self._offset(i, j)] += count

    def assign(self, values) -> None:
        self._ensure_open()
        super().assign(values)

    def to_numpy(self) -> np.ndarray:
        self._ensure_open()
        return super().to_numpy()

    def copy(self) -> "CoOccurrenceMatrix":
        self._ensure_open()
        counts = CoOccurrenceMatrix(self._n)
        counts._values = self._values.copy()
        return counts

    def resize(self, n: int) -> None:
        """Shrink to the first n rows/columns (used once the index map is known)."""
        self._ensure_open()
        if n > self._n:
            raise ConfigurationError(f"Cannot grow a {self._n}x{self._n} matrix to {n}")
        self._values = self._values[: n * (n + 1) // 2].copy()
        self._n = n

    @property
    def finalized(self) -> bool:
        return self._finalized

    def finalize(self) -> SimilarityMatrix:
        """Transfer the buffer to a SimilarityMatrix; this object becomes unusable."""
        self._ensure_open()
        similarity = SimilarityMatrix(self._n, self._values)
        self._values = None
        self._finalized = True
        return similarity


MatrixLike = Union[AbstractMatrix, np.ndarray]


def as_array(mat: MatrixLike) -> np.ndarray:
    """Dense float64 view/copy of any supported matrix."""
    if isinstance(mat, AbstractMatrix):
        return mat.to_numpy()
    return np.asarray(mat, dtype=np.float64)


# =============================================================================
# Assertions
# =============================================================================

def assert_square(mat: MatrixLike) -> None:
    arr = as_array(mat)
    if arr.ndim != 2 or arr.shape[0] != arr.shape[1]:
        raise ConfigurationError(f"Matrix is not square: shape={arr.shape}")


def assert_symmetric(mat: MatrixLike, epsilon: float) -> None:
    """Raise ConfigurationError unless mat is symmetric within epsilon (NaN mirrors NaN)."""
    assert_square(mat)
    arr = as_array(mat)
    nan = np.isnan(arr)

    bad_nan = np.argwhere(nan != nan.T)
    if len(bad_nan):
        i, j = bad_nan[0]
        raise ConfigurationError(
            f"Matrix is not symmetric with respect to NaNs: "
            f"({i},{j})={arr[i, j]} ({j},{i})={arr[j, i]}"
        )

    with np.errstate(invalid="ignore"):
        diff = np.abs(arr - arr.T)
    bad = np.argwhere(~nan & (diff > epsilon))
    if len(bad):
        i, j = bad[0]
        raise ConfigurationError(
            f"Matrix not symmetric: ({i},{j})={arr[i, j]} ({j},{i})={arr[j, i]} "
            f"(epsilon={epsilon:g})"
        )


def assert_diagonally_dominant(mat: MatrixLike) -> None:
    """Raise ConfigurationError if any entry of row/column i exceeds the diagonal entry i."""
    assert_square(mat)
    arr = as_array(mat)
    diag = np.diag(arr)

    for i in range(arr.shape[0]):
        d = diag[i]
        if np.isnan(d):
            continue
        for values, label in ((arr[i, :], "row"), (arr[:, i], "column")):
            with np.errstate(invalid="ignore"):
                over = np.flatnonzero(values > d)
            if len(over):
                j = over[0]
                raise ConfigurationError(
                    f"Matrix is not diagonally dominant in {label} {i}: "
                    f"value {values[j]} at {j} exceeds diagonal {d}"
                )
