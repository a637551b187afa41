"""
Unit tests for Jacobian block storage
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from metricba.core.matrix import DenseBlock, TripletBlock, create_block


class TestDenseBlock:
    """Test dense storage"""

    def test_reshape_and_zero(self):
        block = DenseBlock()
        block.reshape(4, 3)
        block.zero()
        block.set(2, 1, 5.0)

        assert block.shape == (4, 3)
        assert block.data[2, 1] == 5.0

        block.zero()
        assert not block.data.any()

    def test_to_dense_is_copy(self):
        block = DenseBlock(2, 2)
        block.set(0, 0, 1.0)
        dense = block.to_dense()
        dense[0, 0] = 9.0
        assert block.data[0, 0] == 1.0


class TestTripletBlock:
    """Test triplet storage"""

    def test_set_and_convert(self):
        block = TripletBlock()
        block.reshape(3, 4)
        block.zero()
        block.set(0, 3, 1.5)
        block.set(2, 0, -2.0)
        block.set(1, 1, 0.0)

        assert block.nnz == 3
        expected = np.zeros((3, 4))
        expected[0, 3] = 1.5
        expected[2, 0] = -2.0
        np.testing.assert_array_equal(block.to_dense(), expected)
        np.testing.assert_array_equal(block.to_csc().toarray(), expected)

    def test_zero_discards_triplets(self):
        block = TripletBlock(2, 2)
        block.set(0, 0, 1.0)
        block.zero()
        block.set(1, 1, 2.0)

        rows, cols, values = block.triplets()
        assert rows.tolist() == [1]
        assert cols.tolist() == [1]
        assert values.tolist() == [2.0]

    def test_capacity_growth(self):
        block = TripletBlock(50, 50, initial_capacity=2)
        for i in range(50):
            block.set(i, 49 - i, float(i))

        dense = block.to_dense()
        assert block.nnz == 50
        for i in range(50):
            assert dense[i, 49 - i] == float(i)

    def test_empty(self):
        block = TripletBlock()
        block.reshape(6, 0)
        block.zero()
        assert block.to_csc().shape == (6, 0)
        assert block.to_dense().shape == (6, 0)


class TestFactory:
    """Test create_block"""

    def test_create(self):
        assert isinstance(create_block("dense"), DenseBlock)
        assert isinstance(create_block("Triplet"), TripletBlock)

    def test_unknown(self):
        with pytest.raises(ValueError, match="Unknown Jacobian storage"):
            create_block("csr")
