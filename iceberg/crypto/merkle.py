"""
Iceberg Protocol Merkle Accumulator

Append-only binary Merkle tree of commitments with Poseidon H2 nodes.

- Fixed depth (5), leaves indexed by insertion order
- Empty subtrees hash to a fixed zero value per level:
  zero[0] = keccak256("iceberg") mod r, zero[i+1] = H2(zero[i], zero[i])
- Every produced root is remembered so proofs generated against an older
  root can still be recognized
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Dict, List, Optional, Set, Tuple

from iceberg.constants import (
    MERKLE_TREE_DEPTH,
    MERKLE_ZERO_SEED,
)
from iceberg.crypto.field import field_from_bytes, parse_field, short_hex, to_hex32
from iceberg.crypto.hash import keccak256
from iceberg.crypto.poseidon import h2
from iceberg.errors import (
    CapacityExceededError,
    DuplicateCommitmentError,
    InvalidParameterError,
    UnknownLeafError,
)

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def zero_values(depth: int = MERKLE_TREE_DEPTH) -> Tuple[int, ...]:
    """
    Zero value for each level 0..depth (level depth is the empty root).

    Args:
        depth: Tree depth

    Returns:
        depth + 1 field elements
    """
    zeros = [field_from_bytes(keccak256(MERKLE_ZERO_SEED))]
    for _ in range(depth):
        zeros.append(h2(zeros[-1], zeros[-1]))
    return tuple(zeros)


@dataclass
class MerklePath:
    """
    Authenticated path for one leaf.

    path_indices[i] is 1 when the running node at level i is the right
    child (its sibling path_elements[i] is on the left).
    """
    leaf_index: int
    path_elements: List[int]
    path_indices: List[int]

    def compute_root(self, leaf: int) -> int:
        """Fold the path from leaf to root."""
        current = leaf
        for sibling, is_right in zip(self.path_elements, self.path_indices):
            if is_right:
                current = h2(sibling, current)
            else:
                current = h2(current, sibling)
        return current

    def verify(self, root: int, leaf: int) -> bool:
        """
        Verify this path against an expected root.

        Args:
            root: Expected Merkle root
            leaf: Leaf value (commitment)

        Returns:
            True if the path is valid
        """
        if len(self.path_elements) != len(self.path_indices):
            return False
        if any(bit not in (0, 1) for bit in self.path_indices):
            return False
        return self.compute_root(leaf) == root

    @property
    def depth(self) -> int:
        return len(self.path_elements)

    def to_dict(self) -> dict:
        return {
            "leafIndex": self.leaf_index,
            "pathElements": [to_hex32(e) for e in self.path_elements],
            "pathIndices": list(self.path_indices),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "MerklePath":
        elements = [parse_field(e) for e in data["pathElements"]]
        indices = [int(i) for i in data["pathIndices"]]
        if any(bit not in (0, 1) for bit in indices):
            raise InvalidParameterError("pathIndices", "entries must be 0 or 1")
        return cls(
            leaf_index=int(data.get("leafIndex", 0)),
            path_elements=elements,
            path_indices=indices,
        )


def path_indices_for(leaf_index: int, depth: int = MERKLE_TREE_DEPTH) -> List[int]:
    """Bit decomposition of a leaf index, least significant level first."""
    return [(leaf_index >> i) & 1 for i in range(depth)]


@dataclass
class MerkleAccumulator:
    """
    Append-only Merkle tree holding every inserted leaf.

    Stores all nodes of the occupied part of the tree, so paths can be
    produced for any leaf at any time.
    """
    depth: int = MERKLE_TREE_DEPTH

    _levels: List[List[int]] = field(default_factory=list)
    _index_of: Dict[int, int] = field(default_factory=dict)
    _roots: List[int] = field(default_factory=list)
    _root_set: Set[int] = field(default_factory=set)

    def __post_init__(self):
        if self.depth < 1 or self.depth > 32:
            raise InvalidParameterError("depth", f"must be in [1, 32], got {self.depth}")
        self._zeros = zero_values(self.depth)
        self._levels = [[] for _ in range(self.depth + 1)]
        self._index_of = {}
        self._roots = [self._zeros[self.depth]]
        self._root_set = {self._zeros[self.depth]}

    @property
    def capacity(self) -> int:
        return 2 ** self.depth

    @property
    def leaf_count(self) -> int:
        return len(self._levels[0])

    @property
    def leaves(self) -> List[int]:
        return list(self._levels[0])

    @property
    def zeros(self) -> Tuple[int, ...]:
        return self._zeros

    def _node(self, level: int, index: int) -> int:
        nodes = self._levels[level]
        if index < len(nodes):
            return nodes[index]
        return self._zeros[level]

    def root(self) -> int:
        """Current root (the empty-tree root before the first insert)."""
        top = self._levels[self.depth]
        return top[0] if top else self._zeros[self.depth]

    def insert(self, leaf: int) -> int:
        """
        Append a leaf and update the root.

        Args:
            leaf: Commitment field element

        Returns:
            Index assigned to the leaf

        Raises:
            CapacityExceededError: If the tree is full
            DuplicateCommitmentError: If the leaf is already present
        """
        leaf = parse_field(leaf)
        if self.leaf_count >= self.capacity:
            raise CapacityExceededError(self.capacity)
        if leaf in self._index_of:
            raise DuplicateCommitmentError(leaf, self._index_of[leaf])

        index = self.leaf_count
        self._levels[0].append(leaf)
        self._index_of[leaf] = index

        current = leaf
        position = index
        for level in range(self.depth):
            if position & 1:
                left, right = self._node(level, position - 1), current
            else:
                left, right = current, self._node(level, position + 1)
            current = h2(left, right)
            position >>= 1

            parents = self._levels[level + 1]
            if position < len(parents):
                parents[position] = current
            else:
                parents.append(current)

        self._roots.append(current)
        self._root_set.add(current)
        logger.debug(f"Leaf {index} inserted, root {short_hex(current)}")
        return index

    def get_proof(self, leaf_index: int) -> MerklePath:
        """
        Authenticated path for a previously inserted leaf, against the
        current root.

        Raises:
            UnknownLeafError: If leaf_index was never inserted
        """
        if leaf_index < 0 or leaf_index >= self.leaf_count:
            raise UnknownLeafError(leaf_index, self.leaf_count)

        elements = []
        position = leaf_index
        for level in range(self.depth):
            elements.append(self._node(level, position ^ 1))
            position >>= 1

        return MerklePath(
            leaf_index=leaf_index,
            path_elements=elements,
            path_indices=path_indices_for(leaf_index, self.depth),
        )

    def leaf(self, leaf_index: int) -> int:
        if leaf_index < 0 or leaf_index >= self.leaf_count:
            raise UnknownLeafError(leaf_index, self.leaf_count)
        return self._levels[0][leaf_index]

    def find_index(self, leaf: int) -> Optional[int]:
        """Index of a leaf, or None if absent."""
        return self._index_of.get(leaf)

    def contains(self, leaf: int) -> bool:
        return leaf in self._index_of

    def is_known_root(self, root: int) -> bool:
        """True if root is the current root or any earlier one."""
        return root in self._root_set

    def known_roots(self) -> List[int]:
        return list(self._roots)

    def copy(self) -> "MerkleAccumulator":
        """Independent copy (used for transaction rollback)."""
        clone = MerkleAccumulator(depth=self.depth)
        clone._levels = [list(level) for level in self._levels]
        clone._index_of = dict(self._index_of)
        clone._roots = list(self._roots)
        clone._root_set = set(self._root_set)
        return clone


def compute_root(leaves: List[int], depth: int = MERKLE_TREE_DEPTH) -> int:
    """
    Root of a tree holding exactly these leaves, computed from scratch.

    Args:
        leaves: Ordered leaves
        depth: Tree depth

    Returns:
        Merkle root
    """
    zeros = zero_values(depth)
    if len(leaves) > 2 ** depth:
        raise CapacityExceededError(2 ** depth)

    level = list(leaves)
    for d in range(depth):
        if len(level) % 2:
            level.append(zeros[d])
        level = [h2(level[i], level[i + 1]) for i in range(0, len(level), 2)]
        if not level:
            level = [zeros[d + 1]]
    return level[0] if level else zeros[depth]
