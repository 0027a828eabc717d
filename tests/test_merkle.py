"""
Iceberg Protocol Merkle Accumulator Tests
"""

import pytest

from iceberg.constants import FIELD_MODULUS, MERKLE_TREE_DEPTH
from iceberg.crypto.hash import keccak256
from iceberg.crypto.merkle import MerkleAccumulator, MerklePath, compute_root, zero_values
from iceberg.crypto.poseidon import h2
from iceberg.errors import (
    CapacityExceededError,
    DuplicateCommitmentError,
    InvalidParameterError,
    UnknownLeafError,
)


@pytest.fixture
def tree():
    t = MerkleAccumulator()
    for leaf in (11, 22, 33):
        t.insert(leaf)
    return t


class TestZeroValues:
    """Empty subtree values."""

    def test_seed(self):
        """zero[0] is keccak256("iceberg") mod r."""
        assert zero_values()[0] == int.from_bytes(keccak256(b"iceberg"), "big") % FIELD_MODULUS

    def test_chain(self):
        """zero[i+1] = H2(zero[i], zero[i])."""
        zeros = zero_values()
        assert len(zeros) == MERKLE_TREE_DEPTH + 1
        for i in range(MERKLE_TREE_DEPTH):
            assert zeros[i + 1] == h2(zeros[i], zeros[i])

    def test_empty_root(self):
        """An empty tree has the top zero value as root."""
        assert MerkleAccumulator().root() == zero_values()[MERKLE_TREE_DEPTH]


class TestMerkleAccumulator:
    """Insertion, paths and root history."""

    def test_indices_follow_insertion_order(self):
        """Leaves get 0, 1, 2..."""
        t = MerkleAccumulator()
        assert [t.insert(v) for v in (5, 6, 7)] == [0, 1, 2]
        assert t.leaf_count == 3

    def test_root_matches_from_scratch(self, tree):
        """Incremental root equals a full recomputation."""
        assert tree.root() == compute_root([11, 22, 33])

    def test_every_path_verifies(self, tree):
        """Each inserted leaf proves against the current root."""
        for index, leaf in enumerate((11, 22, 33)):
            path = tree.get_proof(index)
            assert path.verify(tree.root(), leaf)

    def test_path_indices_are_index_bits(self, tree):
        """pathIndices[i] is bit i of the leaf index (1 = right child)."""
        assert tree.get_proof(2).path_indices == [0, 1, 0, 0, 0]
        assert tree.get_proof(1).path_indices == [1, 0, 0, 0, 0]

    def test_mutated_element_fails(self, tree):
        """Changing any sibling breaks the path."""
        path = tree.get_proof(1)
        for i in range(path.depth):
            elements = list(path.path_elements)
            elements[i] = (elements[i] + 1) % FIELD_MODULUS
            bad = MerklePath(path.leaf_index, elements, list(path.path_indices))
            assert not bad.verify(tree.root(), 22)

    def test_flipped_index_fails(self, tree):
        """Flipping any direction bit breaks the path."""
        path = tree.get_proof(2)
        for i in range(path.depth):
            indices = list(path.path_indices)
            indices[i] ^= 1
            bad = MerklePath(path.leaf_index, list(path.path_elements), indices)
            assert not bad.verify(tree.root(), 33)

    def test_wrong_leaf_fails(self, tree):
        """A path does not prove a different leaf."""
        assert not tree.get_proof(0).verify(tree.root(), 12)

    def test_non_binary_index_fails(self, tree):
        """Direction entries other than 0/1 are invalid."""
        path = tree.get_proof(0)
        bad = MerklePath(0, path.path_elements, [2] + path.path_indices[1:])
        assert not bad.verify(tree.root(), 11)

    def test_old_roots_remembered(self, tree):
        """Roots produced before later inserts stay known."""
        old_root = tree.root()
        tree.insert(44)
        assert tree.root() != old_root
        assert tree.is_known_root(old_root)
        assert not tree.is_known_root(12345)

    def test_every_root_kept_in_deep_tree(self):
        """Deeper trees remember every root, not just the last 2**5 + 1."""
        deep = MerkleAccumulator(depth=6)
        deep.insert(1)
        first_root = deep.root()
        for leaf in range(2, 42):
            deep.insert(leaf)

        assert deep.is_known_root(first_root)
        assert len(deep.known_roots()) == 42
        assert deep.copy().is_known_root(first_root)

    def test_old_path_against_old_root(self, tree):
        """A path read before a later insert still proves against its root."""
        old_root = tree.root()
        old_path = tree.get_proof(0)
        tree.insert(44)
        assert old_path.verify(old_root, 11)
        assert not old_path.verify(tree.root(), 11)

    def test_duplicate_rejected(self, tree):
        """The same commitment cannot be inserted twice."""
        with pytest.raises(DuplicateCommitmentError):
            tree.insert(22)
        assert tree.leaf_count == 3

    def test_capacity(self):
        """A depth-5 tree holds exactly 32 leaves."""
        t = MerkleAccumulator()
        for i in range(32):
            t.insert(i + 1)
        with pytest.raises(CapacityExceededError):
            t.insert(1000)
        assert t.get_proof(31).verify(t.root(), 32)

    def test_unknown_leaf(self, tree):
        """Paths exist only for inserted leaves."""
        with pytest.raises(UnknownLeafError):
            tree.get_proof(3)
        with pytest.raises(UnknownLeafError):
            tree.get_proof(-1)

    def test_copy_is_independent(self, tree):
        """Inserting into a copy leaves the original alone."""
        clone = tree.copy()
        clone.insert(99)
        assert tree.leaf_count == 3
        assert clone.leaf_count == 4
        assert tree.find_index(99) is None

    def test_invalid_depth(self):
        """Depth must be between 1 and 32."""
        with pytest.raises(InvalidParameterError):
            MerkleAccumulator(depth=0)


class TestMerklePathSerialization:
    """JSON form used by the RPC API."""

    def test_dict_form(self, tree):
        """Hex elements and integer directions."""
        path = tree.get_proof(2)
        data = path.to_dict()
        assert data["leafIndex"] == 2
        assert all(e.startswith("0x") and len(e) == 66 for e in data["pathElements"])
        assert MerklePath.from_dict(data) == path

    def test_from_dict_rejects_bad_direction(self):
        """Directions other than 0/1 are refused."""
        with pytest.raises(InvalidParameterError):
            MerklePath.from_dict({"pathElements": ["0x01"], "pathIndices": [3]})
