"""Vault data models."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

NAME_MAX_LENGTH = 64


class VaultRecord(BaseModel):
    """One row of the vault table: a shared public key or one owner's encrypted private key.

    ``material`` is the public key DER for public records and the serialized
    envelope for private records.
    """

    id: int
    is_private: bool
    name: str = Field(min_length=1, max_length=NAME_MAX_LENGTH)
    owner: int | None = None
    material: bytes

    @model_validator(mode="after")
    def _owner_matches_kind(self) -> VaultRecord:
        if self.is_private and self.owner is None:
            raise ValueError("private records require an owner")
        if not self.is_private and self.owner is not None:
            raise ValueError("public records have no owner")
        return self

    @classmethod
    def from_row(cls, row: tuple) -> VaultRecord:
        """Build from an ``(id, is_private, name, owner, material)`` row."""
        rid, is_private, name, owner, material = row
        return cls(
            id=rid,
            is_private=is_private,
            name=name,
            owner=owner,
            material=bytes(material),
        )
