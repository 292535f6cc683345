import enum
from datetime import datetime

from sqlalchemy import Column, DateTime, Enum


class LifecycleState(str, enum.Enum):
    ACTIVE = "active"
    TRASHED = "trashed"


class TrashableMixin:
    """Soft-delete lifecycle shared by folders and assets.

    ``state`` is the source of truth; ``trashed_at`` records when the row
    last moved into ``TRASHED`` and is cleared on restore.
    """

    state = Column(
        Enum(LifecycleState, name="lifecycle_state", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=LifecycleState.ACTIVE,
        index=True,
    )
    trashed_at = Column(DateTime, nullable=True)

    @property
    def is_trashed(self) -> bool:
        return self.state == LifecycleState.TRASHED

    def move_to_trash(self, when: datetime | None = None) -> None:
        self.state = LifecycleState.TRASHED
        self.trashed_at = when or datetime.utcnow()

    def restore(self) -> None:
        self.state = LifecycleState.ACTIVE
        self.trashed_at = None
