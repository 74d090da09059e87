"""Pydantic schemas for the order desk API.

This module exposes the request validation schemas used by the views and
the read schemas used to serialise domain objects back to JSON.
"""

from django.conf import settings
from pydantic import BaseModel, Field, field_validator

from .domain import (
    DEFAULT_DEPOSIT, DEFAULT_RICE_TYPE, Client, ClientDraft, ClientStatus, Paella, PaellaDraft, PaellaStatus,
)
from .notes_codec import OrderAnnotation


def rice_types() -> set[str]:
    return set(getattr(settings, "RICE_TYPES", ("Mixta", "Marisco", "Carne", "Vegetal")))


def default_deposit() -> float:
    return getattr(settings, "DEFAULT_DEPOSIT", DEFAULT_DEPOSIT)


class PaellaIn(BaseModel):
    """Input schema for one paella.

    Attributes:
        id: Existing paella id. Required when updating, ignored on creation.
        servings: Number of people, at least 2.
        rice_type: One of the configured rice labels.
        notes: Free-text remarks.
        deposit: Deposit amount. ``null`` (or omitted) means no deposit;
            ``0`` means waived. The annotation is replaced wholesale on edits.
        price: Final price, or ``null`` when not priced yet.
    """

    id: str | None = None
    servings: int = Field(ge=2)
    rice_type: str | None = DEFAULT_RICE_TYPE
    notes: str = ""
    deposit: float | None = Field(default=None, ge=0)
    price: float | None = Field(default=None, ge=0)

    @field_validator("rice_type")
    @classmethod
    def validate_rice_type(cls, v: str | None) -> str | None:
        """Validate the rice label against ``settings.RICE_TYPES``.

        Raises:
            ValueError: When the label is not configured.
        """
        if v is not None and v not in rice_types():
            raise ValueError("Unsupported rice type")
        return v

    def to_draft(self) -> PaellaDraft:
        return PaellaDraft(
            id=self.id,
            servings=self.servings,
            rice_type=self.rice_type,
            annotation=OrderAnnotation(notes=self.notes, deposit=self.deposit, price=self.price),
        )


class ClientIn(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str | None = Field(default=None, max_length=32)
    notes: str | None = None

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("Name cannot be blank")
        return v2

    def to_draft(self) -> ClientDraft:
        return ClientDraft(
            first_name=self.first_name,
            last_name=self.last_name,
            phone=(self.phone or "").strip() or None,
            notes=self.notes or None,
        )


class NewPaellaIn(PaellaIn):
    """A paella being registered: an omitted deposit takes ``settings.DEFAULT_DEPOSIT``."""

    deposit: float | None = Field(default_factory=default_deposit, ge=0)


class CreateClientDTO(ClientIn):
    """Schema for registering a client together with their paellas."""

    paellas: list[NewPaellaIn] = Field(min_length=1)


class UpdateClientDTO(ClientIn):
    """Schema for editing a client. Every listed paella must carry its ``id``."""

    paellas: list[PaellaIn] = Field(default_factory=list)

    @field_validator("paellas")
    @classmethod
    def require_ids(cls, v: list[PaellaIn]) -> list[PaellaIn]:
        if any(not p.id for p in v):
            raise ValueError("Every paella needs an id")
        return v


class ClientStatusDTO(BaseModel):
    status: ClientStatus


class PaellaStatusDTO(BaseModel):
    status: PaellaStatus


class LoginDTO(BaseModel):
    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=1)


class InviteEmployeeDTO(BaseModel):
    """Schema for inviting an employee account (``fullName`` is accepted as an alias)."""

    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=6)
    full_name: str | None = Field(default=None, alias="fullName")

    model_config = {"populate_by_name": True}

    @field_validator("email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        v2 = v.strip().lower()
        if "@" not in v2:
            raise ValueError("Invalid email")
        return v2


# ---- Read schemas ----
class PaellaReadDTO(BaseModel):
    id: str
    client_id: str
    servings: int
    rice_type: str | None = None
    status: PaellaStatus
    notes: str = ""
    deposit: float | None = None
    price: float | None = None
    scheduled_for: str | None = None
    created_at: str | None = None

    @classmethod
    def from_domain(cls, p: Paella) -> "PaellaReadDTO":
        return cls(
            id=p.id,
            client_id=p.client_id,
            servings=p.servings,
            rice_type=p.rice_type,
            status=p.status,
            notes=p.annotation.notes,
            deposit=p.annotation.deposit,
            price=p.annotation.price,
            scheduled_for=p.scheduled_for,
            created_at=p.created_at,
        )


class ClientReadDTO(BaseModel):
    id: str
    first_name: str
    last_name: str
    phone: str | None = None
    notes: str | None = None
    status: ClientStatus
    progress: PaellaStatus
    created_at: str | None = None
    total_deposit: float = 0
    total_price: float = 0
    paellas: list[PaellaReadDTO] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, c: Client) -> "ClientReadDTO":
        return cls(
            id=c.id,
            first_name=c.first_name,
            last_name=c.last_name,
            phone=c.phone,
            notes=c.notes,
            status=c.status,
            progress=c.progress,
            created_at=c.created_at,
            total_deposit=c.total_deposit,
            total_price=c.total_price,
            paellas=[PaellaReadDTO.from_domain(p) for p in c.paellas],
        )
