from __future__ import annotations

from collections import Counter
from contextlib import contextmanager
from typing import Iterator


class ReentrancyGuard:
    """Users whose moderation state the engine itself is currently writing.

    Change notifications for an owned user are the engine's own echoes and
    must not be replicated again. Ownership is counted so that a nested
    ``owning`` block never releases an outer owner.
    """

    def __init__(self) -> None:
        self._owned: Counter[int] = Counter()

    def begin(self, user_id: int) -> None:
        self._owned[int(user_id)] += 1

    def end(self, user_id: int) -> None:
        uid = int(user_id)
        if self._owned[uid] <= 1:
            self._owned.pop(uid, None)
        else:
            self._owned[uid] -= 1

    def is_owned(self, user_id: int) -> bool:
        return self._owned.get(int(user_id), 0) > 0

    @contextmanager
    def owning(self, user_id: int) -> Iterator[None]:
        self.begin(user_id)
        try:
            yield
        finally:
            self.end(user_id)

    def __len__(self) -> int:
        return len(self._owned)
