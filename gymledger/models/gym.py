"""Gym ORM model - the tenant every other record is keyed by."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gymledger.models import Base, BaseModel


class Gym(Base, BaseModel):
    """A gym owning members, ledger entries and daily cash aggregates."""

    __tablename__ = "gyms"

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Display name of the gym",
    )

    members: Mapped[list["Member"]] = relationship(  # noqa: F821
        "Member",
        back_populates="gym",
    )

    def __repr__(self) -> str:
        return f"<Gym(id={self.id}, name={self.name})>"


__all__ = ["Gym"]
