"""
logclust Core

Matrix containers and the exception taxonomy shared by every module.
"""

from .exceptions import (
    LogclustError,
    ConfigurationError,
    UnsupportedOperationError,
    StreamStateError,
    ClusteringInternalError,
)
from .matrix import (
    AbstractMatrix,
    DoubleMatrix,
    SymmetricMatrix,
    SimilarityMatrix,
    CoOccurrenceMatrix,
    as_array,
    assert_square,
    assert_symmetric,
    assert_diagonally_dominant,
)

__all__ = [
    "LogclustError",
    "ConfigurationError",
    "UnsupportedOperationError",
    "StreamStateError",
    "ClusteringInternalError",
    "AbstractMatrix",
    "DoubleMatrix",
    "SymmetricMatrix",
    "SimilarityMatrix",
    "CoOccurrenceMatrix",
    "as_array",
    "assert_square",
    "assert_symmetric",
    "assert_diagonally_dominant",
]
