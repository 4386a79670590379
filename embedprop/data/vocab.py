"""
Vocabulary Module.

Bidirectional mapping between (category, name) pairs and dense integer ids.
The feature store uses it to turn feature names into rows of the feature
embedding table.
"""

import uuid
from typing import Dict, List, Optional, Tuple


TranslationTable = List[Optional[int]]


class Vocab:
    """
    Map (category, name) pairs to contiguous integer ids.

    Ids are assigned in insertion order starting at 0. Each instance
    carries a unique ``vocab_id`` so two vocabularies can be checked for
    identity without comparing their contents.

    Example:
        >>> vocab = Vocab()
        >>> vocab.get_or_insert("feat", "red")
        0
        >>> vocab.get_or_insert("feat", "blue")
        1
        >>> vocab.get_or_insert("feat", "red")
        0
        >>> vocab.get_name(1)
        ('feat', 'blue')
    """

    def __init__(self, vocab_id: Optional[str] = None):
        """
        Initialize empty vocabulary.

        Args:
            vocab_id: Identity for this vocabulary. A fresh one is generated
                      when omitted.
        """
        self.vocab_id = vocab_id if vocab_id is not None else uuid.uuid4().hex

        self._vocab_to_idx: Dict[Tuple[int, str], int] = {}
        self._id_to_node: List[Tuple[int, str]] = []
        self._node_type_to_id: Dict[str, int] = {}
        self._id_to_node_type: List[str] = []

    def __len__(self) -> int:
        return len(self._id_to_node)

    def is_identical(self, other: 'Vocab') -> bool:
        """Check whether both objects are the same vocabulary."""
        return self.vocab_id == other.vocab_id

    def _get_or_insert_node_type(self, node_type: str) -> int:
        nt_id = self._node_type_to_id.get(node_type)
        if nt_id is None:
            nt_id = len(self._id_to_node_type)
            self._node_type_to_id[node_type] = nt_id
            self._id_to_node_type.append(node_type)
        return nt_id

    def get_or_insert(self, node_type: str, name: str) -> int:
        """
        Look up a pair, inserting it if missing.

        Args:
            node_type: Category of the entry (e.g. "feat")
            name: Name within the category

        Returns:
            Integer id of the pair
        """
        key = (self._get_or_insert_node_type(node_type), name)
        node_id = self._vocab_to_idx.get(key)
        if node_id is None:
            node_id = len(self._id_to_node)
            self._vocab_to_idx[key] = node_id
            self._id_to_node.append(key)
        return node_id

    def get_node_id(self, node_type: str, name: str) -> Optional[int]:
        """Get id of a pair, or None if it was never inserted."""
        nt_id = self._node_type_to_id.get(node_type)
        if nt_id is None:
            return None
        return self._vocab_to_idx.get((nt_id, name))

    def get_node_type(self, node_id: int) -> Optional[str]:
        """Get the category of an id."""
        if not 0 <= node_id < len(self._id_to_node):
            return None
        nt_id, _ = self._id_to_node[node_id]
        return self._id_to_node_type[nt_id]

    def get_name(self, node_id: int) -> Optional[Tuple[str, str]]:
        """Get the (category, name) pair of an id."""
        if not 0 <= node_id < len(self._id_to_node):
            return None
        nt_id, name = self._id_to_node[node_id]
        return self._id_to_node_type[nt_id], name

    def translate_node(self, other: 'Vocab', other_node_id: int) -> Optional[int]:
        """
        Translate an id from another vocabulary into this one.

        Args:
            other: Vocabulary the id comes from
            other_node_id: Id in ``other``

        Returns:
            Id of the same pair in this vocabulary, or None
        """
        if self.is_identical(other):
            return other_node_id

        pair = other.get_name(other_node_id)
        if pair is None:
            return None
        return self.get_node_id(*pair)

    def create_translation_table(self, to_vocab: 'Vocab') -> TranslationTable:
        """
        Build a lookup table from this vocabulary's ids into ``to_vocab``.

        Entry ``i`` holds the id of pair ``i`` in ``to_vocab`` or None when
        the pair is missing there.
        """
        if self.is_identical(to_vocab):
            return list(range(len(self)))

        return [
            to_vocab.get_node_id(self._id_to_node_type[nt_id], name)
            for nt_id, name in self._id_to_node
        ]
