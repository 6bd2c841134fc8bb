"""
Candidate selection and pair enumeration.
"""

from typing import Iterator, List, Optional, Sequence, Tuple

from .exposure_index import ExposureIndex
from .exceptions import ValueOutOfRangeError
from .logging_config import get_logger
from .models import Combination

logger = get_logger(__name__)

# Pair count grows quadratically with the candidate count
MAX_CANDIDATES = 200


class CandidateSelector:
    """Picks the items that take part in the combination search."""

    def __init__(self, min_users: int = 1, max_candidates: int = MAX_CANDIDATES):
        if min_users < 1:
            raise ValueOutOfRangeError("min_users", min_users, min_value=1)
        if max_candidates < 2:
            raise ValueOutOfRangeError("max_candidates", max_candidates, min_value=2)
        self.min_users = min_users
        self.max_candidates = max_candidates

    def select(self, index: ExposureIndex) -> List[str]:
        """
        Items with at least ``min_users`` exposed users, most exposed first.

        Ties are broken by item id so the order is deterministic. Returns an
        empty list when fewer than two items qualify.
        """
        counts = index.item_user_counts()
        qualifying = sorted(
            ((item, n) for item, n in counts.items() if n >= self.min_users),
            key=lambda kv: (-kv[1], kv[0]),
        )
        logger.info(f"Found {len(qualifying)} items with >={self.min_users} user exposures")

        candidates = [item for item, _ in qualifying[: self.max_candidates]]
        if len(qualifying) > self.max_candidates:
            logger.info(
                f"Capped candidates at {self.max_candidates} ({len(qualifying)} available)"
            )

        if len(candidates) < 2:
            logger.warning(f"Only {len(candidates)} candidate items qualify; need at least 2")
            return []
        return candidates


class CombinationEnumerator:
    """
    Every unordered pair of a candidate list, exactly once.

    Pairs come out in index order (i < j). Each iteration starts over, so the
    enumerator can be consumed repeatedly.
    """

    def __init__(self, candidates: Sequence[str]):
        self.candidates = list(candidates)

    def __len__(self) -> int:
        n = len(self.candidates)
        return n * (n - 1) // 2

    def index_pairs(self, start: int = 0, limit: Optional[int] = None) -> Iterator[Tuple[int, int]]:
        """Yield (i, j) candidate positions, skipping ``start`` pairs and stopping after ``limit``."""
        n = len(self.candidates)
        position = 0
        emitted = 0
        for i in range(n - 1):
            # jump over whole rows that lie before ``start``
            row_length = n - i - 1
            if position + row_length <= start:
                position += row_length
                continue
            for j in range(i + 1, n):
                if position >= start:
                    if limit is not None and emitted >= limit:
                        return
                    yield i, j
                    emitted += 1
                position += 1

    def pairs(self, start: int = 0, limit: Optional[int] = None) -> Iterator[Combination]:
        for i, j in self.index_pairs(start, limit):
            yield Combination(self.candidates[i], self.candidates[j])

    def __iter__(self) -> Iterator[Combination]:
        return self.pairs()

