"""
Output storage for the Jacobian blocks

The Jacobian assembler only needs three operations on a block: reshape it,
zero it and set a single element. Every element is written at most once per
evaluation and writes may arrive in any order, so a block can be a dense array
or a list of sparse triplets.
"""

import numpy as np
import logging
from abc import ABC, abstractmethod
from typing import Tuple
from scipy.sparse import coo_matrix, csc_matrix

logger = logging.getLogger(__name__)


class JacobianBlock(ABC):
    """Matrix which the Jacobian assembler writes into"""

    @abstractmethod
    def reshape(self, rows: int, cols: int) -> None:
        """Change the shape. Contents are undefined until zero() is called"""

    @abstractmethod
    def zero(self) -> None:
        """Set every element to zero"""

    @abstractmethod
    def set(self, row: int, col: int, value: float) -> None:
        """Assign a value to a single element"""

    @property
    @abstractmethod
    def shape(self) -> Tuple[int, int]:
        """(rows, cols)"""

    @abstractmethod
    def to_dense(self) -> np.ndarray:
        """Copy of the block as a dense array"""


class DenseBlock(JacobianBlock):
    """Row-major dense storage backed by a numpy array"""

    def __init__(self, rows: int = 0, cols: int = 0):
        self.data = np.zeros((rows, cols))

    def reshape(self, rows: int, cols: int) -> None:
        if self.data.shape != (rows, cols):
            self.data = np.zeros((rows, cols))

    def zero(self) -> None:
        self.data.fill(0.0)

    def set(self, row: int, col: int, value: float) -> None:
        self.data[row, col] = value

    @property
    def shape(self) -> Tuple[int, int]:
        return self.data.shape

    def to_dense(self) -> np.ndarray:
        return self.data.copy()

    def __repr__(self) -> str:
        return f"DenseBlock(shape={self.shape})"


class TripletBlock(JacobianBlock):
    """
    Sparse storage as (row, col, value) triplets

    Triplet arrays are kept between evaluations and only grow, so repeated
    evaluations of the same problem do not allocate.
    """

    def __init__(self, rows: int = 0, cols: int = 0, initial_capacity: int = 64):
        self._shape = (rows, cols)
        capacity = max(1, initial_capacity)
        self._rows = np.zeros(capacity, dtype=np.int64)
        self._cols = np.zeros(capacity, dtype=np.int64)
        self._values = np.zeros(capacity)
        self._length = 0

    def reshape(self, rows: int, cols: int) -> None:
        self._shape = (rows, cols)

    def zero(self) -> None:
        self._length = 0

    def set(self, row: int, col: int, value: float) -> None:
        if self._length == len(self._values):
            self._grow()
        n = self._length
        self._rows[n] = row
        self._cols[n] = col
        self._values[n] = value
        self._length = n + 1

    def _grow(self) -> None:
        capacity = 2 * len(self._values)
        self._rows = np.resize(self._rows, capacity)
        self._cols = np.resize(self._cols, capacity)
        self._values = np.resize(self._values, capacity)

    @property
    def shape(self) -> Tuple[int, int]:
        return self._shape

    @property
    def nnz(self) -> int:
        """Number of stored triplets, explicit zeros included"""
        return self._length

    def triplets(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Views of the (rows, cols, values) arrays"""
        n = self._length
        return self._rows[:n], self._cols[:n], self._values[:n]

    def to_csc(self) -> csc_matrix:
        """Column compressed copy, the layout sparse Cholesky solvers expect"""
        rows, cols, values = self.triplets()
        return coo_matrix((values, (rows, cols)), shape=self._shape).tocsc()

    def to_dense(self) -> np.ndarray:
        dense = np.zeros(self._shape)
        rows, cols, values = self.triplets()
        dense[rows, cols] = values
        return dense

    def __repr__(self) -> str:
        return f"TripletBlock(shape={self.shape}, nnz={self.nnz})"


BLOCK_TYPES = {
    "dense": DenseBlock,
    "triplet": TripletBlock,
}


def create_block(storage: str) -> JacobianBlock:
    """Create an empty block for the named storage type"""
    try:
        return BLOCK_TYPES[storage.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown Jacobian storage '{storage}', expected one of {sorted(BLOCK_TYPES)}"
        ) from None
