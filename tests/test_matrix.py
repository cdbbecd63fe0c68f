"""
logclust Matrix Layer Tests

Run with:
    pytest tests/test_matrix.py -v
"""

import numpy as np
import pytest

from logclust.core import (
    ConfigurationError,
    StreamStateError,
    DoubleMatrix,
    SymmetricMatrix,
    SimilarityMatrix,
    CoOccurrenceMatrix,
    assert_square,
    assert_symmetric,
    assert_diagonally_dominant,
)


# =============================================================================
# Dense matrix
# =============================================================================

class TestDoubleMatrix:

    def test_get_set(self):
        """Values written are read back; the matrix starts at zero."""
        mat = DoubleMatrix(2, 3)
        assert mat.shape == (2, 3)
        assert mat.get(1, 2) == 0.0
        mat.set(1, 2, 4.5)
        assert mat.get(1, 2) == 4.5

    def test_index_out_of_range(self):
        mat = DoubleMatrix(2)
        with pytest.raises(IndexError):
            mat.get(2, 0)
        with pytest.raises(IndexError):
            mat.set(0, -1, 1.0)

    def test_copy_is_independent(self):
        mat = DoubleMatrix.from_array([[1.0, 2.0], [3.0, 4.0]])
        clone = mat.copy()
        clone.set(0, 0, 9.0)
        assert mat.get(0, 0) == 1.0

    def test_set_all_and_row(self):
        mat = DoubleMatrix(3)
        mat.set_all(2.0)
        assert np.all(mat.to_numpy() == 2.0)
        mat.get_row(1)[:] = 5.0
        assert mat.get(1, 2) == 5.0

    def test_from_array_rejects_vectors(self):
        with pytest.raises(ConfigurationError):
            DoubleMatrix.from_array([1.0, 2.0])


# =============================================================================
# Symmetric matrix
# =============================================================================

class TestSymmetricMatrix:

    def test_mirrored_writes(self):
        """(i, j) and (j, i) are the same cell."""
        mat = SymmetricMatrix(4)
        mat.set(3, 1, 0.7)
        assert mat.get(1, 3) == 0.7
        mat.set(1, 3, -0.2)
        assert mat.get(3, 1) == -0.2

    def test_to_numpy_is_symmetric(self):
        mat = SymmetricMatrix(3)
        mat.set(0, 1, 1.0)
        mat.set(2, 0, 2.0)
        mat.set(1, 1, 3.0)
        arr = mat.to_numpy()
        assert np.array_equal(arr, arr.T)
        assert arr[1, 1] == 3.0

    def test_from_array_round(self):
        arr = np.array([[1.0, 0.5, 0.1], [0.5, 1.0, 0.2], [0.1, 0.2, 1.0]])
        mat = SymmetricMatrix.from_array(arr)
        assert np.array_equal(mat.to_numpy(), arr)

    def test_from_array_rejects_asymmetric(self):
        with pytest.raises(ConfigurationError):
            SymmetricMatrix.from_array([[1.0, 0.5], [0.4, 1.0]])

    def test_assign_in_place(self):
        mat = SimilarityMatrix(2)
        mat.assign(np.array([[1.0, 0.3], [0.3, 2.0]]))
        assert mat.get(0, 1) == 0.3
        assert mat.get(1, 1) == 2.0
        with pytest.raises(ConfigurationError):
            mat.assign(np.zeros((3, 3)))

    def test_negative_size(self):
        with pytest.raises(ConfigurationError):
            SymmetricMatrix(-1)


# =============================================================================
# Co-occurrence matrix
# =============================================================================

class TestCoOccurrenceMatrix:

    def test_add_accumulates(self):
        counts = CoOccurrenceMatrix(3)
        counts.add(0, 2, 1)
        counts.add(2, 0, 2)
        assert counts.get(0, 2) == 3

    def test_resize_keeps_leading_block(self):
        counts = CoOccurrenceMatrix(4)
        counts.set(1, 0, 5)
        counts.set(3, 3, 7)
        counts.resize(2)
        assert counts.shape == (2, 2)
        assert counts.get(0, 1) == 5
        with pytest.raises(ConfigurationError):
            counts.resize(3)

    def test_finalize_shares_values(self):
        """finalize() hands the values over; the counts object is dead afterwards."""
        counts = CoOccurrenceMatrix(2)
        counts.set(0, 1, 4)
        similarity = counts.finalize()
        assert isinstance(similarity, SimilarityMatrix)
        assert similarity.get(1, 0) == 4
        assert counts.finalized

        with pytest.raises(StreamStateError):
            counts.get(0, 0)
        with pytest.raises(StreamStateError):
            counts.add(0, 0, 1)
        with pytest.raises(StreamStateError):
            counts.finalize()


# =============================================================================
# Assertions
# =============================================================================

class TestAssertions:

    def test_square(self):
        assert_square(np.zeros((3, 3)))
        with pytest.raises(ConfigurationError):
            assert_square(np.zeros((2, 3)))

    def test_symmetric_within_epsilon(self):
        arr = np.array([[1.0, 0.5], [0.5 + 1e-12, 1.0]])
        assert_symmetric(arr, 1e-9)
        with pytest.raises(ConfigurationError):
            assert_symmetric(arr, 1e-16)

    def test_symmetric_nan_must_be_mirrored(self):
        arr = np.array([[1.0, np.nan], [np.nan, 1.0]])
        assert_symmetric(arr, 0.0)
        arr[1, 0] = 0.2
        with pytest.raises(ConfigurationError):
            assert_symmetric(arr, 0.0)

    def test_diagonally_dominant(self, block_similarity):
        assert_diagonally_dominant(block_similarity)
        block_similarity[0, 4] = 1.5
        with pytest.raises(ConfigurationError):
            assert_diagonally_dominant(block_similarity)

    def test_nan_diagonal_is_skipped(self):
        arr = np.array([[np.nan, 5.0], [5.0, 6.0]])
        assert_diagonally_dominant(arr)
