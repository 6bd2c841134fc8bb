"""
Exposure Index
Builds per-user exposure sets and conversion outcomes from engagement rows.
"""

from collections import Counter
from typing import Dict, Iterator, List, Sequence

import numpy as np
import pandas as pd

from .logging_config import get_logger
from .models import UserRecord

logger = get_logger(__name__)


class ExposureIndex:
    """
    The user population of one analysis run.

    A user is exposed to an item only when the summed view count of that
    (user, item) pair is strictly positive. Outcome columns are user-level and
    read from the user's first row.
    """

    def __init__(self, users: Sequence[UserRecord]):
        self._users: List[UserRecord] = list(users)

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "ExposureIndex":
        """
        Build the index from a cleaned canonical engagement frame.

        Args:
            df: Frame with user_id, item_id, view_count, converted, conversion_count.

        Returns:
            ExposureIndex holding one UserRecord per distinct user.
        """
        if df.empty:
            return cls([])

        viewed = df.dropna(subset=['item_id'])
        views = viewed.groupby(['user_id', 'item_id'], sort=False)['view_count'].sum()
        views = views[views > 0].reset_index()
        exposures: Dict[str, set] = {}
        for user_id, item_id in zip(views['user_id'], views['item_id']):
            exposures.setdefault(user_id, set()).add(item_id)

        outcomes = df.groupby('user_id', sort=False)[['converted', 'conversion_count']].first()

        users = []
        for user_id, row in outcomes.iterrows():
            converted = bool(row['converted'])
            count = int(row['conversion_count'])
            if count > 0 and not converted:
                logger.warning(
                    f"User {user_id} has conversion_count={count} but no conversion flag; "
                    "marking as converted"
                )
                converted = True
            elif converted and count == 0:
                logger.warning(
                    f"User {user_id} is flagged converted with conversion_count=0; "
                    "counting one conversion"
                )
                count = 1
            users.append(
                UserRecord(
                    user_id=str(user_id),
                    exposed_items=frozenset(exposures.get(user_id, ())),
                    converted=converted,
                    conversion_count=count,
                )
            )

        logger.info(f"Converted {len(df)} rows to {len(users)} unique users")
        return cls(users)

    @property
    def users(self) -> List[UserRecord]:
        return list(self._users)

    def __len__(self) -> int:
        return len(self._users)

    def __iter__(self) -> Iterator[UserRecord]:
        return iter(self._users)

    def item_user_counts(self) -> Counter:
        """Number of distinct users exposed to each item."""
        counts: Counter = Counter()
        for user in self._users:
            counts.update(user.exposed_items)
        return counts

    def exposure_matrix(self, items: Sequence[str]) -> np.ndarray:
        """Boolean users x items matrix; column order follows ``items``."""
        column = {item: j for j, item in enumerate(items)}
        matrix = np.zeros((len(self._users), len(items)), dtype=bool)
        for i, user in enumerate(self._users):
            for item in user.exposed_items:
                j = column.get(item)
                if j is not None:
                    matrix[i, j] = True
        return matrix

    def outcomes(self) -> np.ndarray:
        """Binary conversion outcome per user."""
        return np.fromiter((u.converted for u in self._users), dtype=bool, count=len(self._users))

    def conversion_counts(self) -> np.ndarray:
        """Conversion magnitude per user."""
        return np.fromiter(
            (u.conversion_count for u in self._users), dtype=np.int64, count=len(self._users)
        )
