import uuid as uuid_mod
from datetime import UTC, datetime

from sqlalchemy import TypeDecorator, UniqueConstraint
from sqlalchemy.types import DateTime
from sqlmodel import Field, SQLModel

from jigsync.puzzle import Difficulty, PuzzleConfig


class UTCDateTime(TypeDecorator):
    """SQLAlchemy type that ensures datetimes are always UTC-aware.

    SQLite strips timezone info on storage. This type decorator
    re-attaches UTC on load so consumers never see naive datetimes.
    """

    impl = DateTime
    cache_ok = True

    def process_result_value(
        self, value: datetime | None, dialect: object
    ) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


def utcnow() -> datetime:
    return datetime.now(UTC)


class Room(SQLModel, table=True):
    """One collaborative puzzle session.

    The grid geometry is stored flat (rows, cols, difficulty) and never
    updated after the row is inserted.
    """

    id: str = Field(default_factory=lambda: str(uuid_mod.uuid4()), primary_key=True)
    name: str
    image_url: str
    image_key: str | None = None  # Object store key, used to delete the upload
    rows: int
    cols: int
    difficulty: Difficulty
    created_by: str = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime())

    @property
    def config(self) -> PuzzleConfig:
        return PuzzleConfig(rows=self.rows, cols=self.cols, difficulty=self.difficulty)


class Piece(SQLModel, table=True):
    """Movable unit of a room's grid with a fixed home position."""

    __table_args__ = (UniqueConstraint("room_id", "piece_index"),)

    id: str = Field(default_factory=lambda: str(uuid_mod.uuid4()), primary_key=True)
    room_id: str = Field(foreign_key="room.id", index=True)
    piece_index: int
    current_x: float
    current_y: float
    target_x: float
    target_y: float
    is_placed: bool = Field(default=False)
    rotation: float = Field(default=0.0)  # Reserved, always 0
    last_moved_by: str | None = None
    updated_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime())


class RoomMembership(SQLModel, table=True):
    room_id: str = Field(foreign_key="room.id", primary_key=True)
    user_id: str = Field(primary_key=True)
    email: str | None = None
    is_active: bool = Field(default=True)
    joined_at: datetime = Field(default_factory=utcnow, sa_type=UTCDateTime())
