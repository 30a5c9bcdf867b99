"""Entity Domain Entity

A node in the ownership hierarchy: tenant -> organizations/locations -> sub-units.
The hierarchy is read-mostly; parent assignments are validated against the
whole tenant tree before they are written (see EntityHierarchy).
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from sqlmodel import Field, Column, Index
from sqlalchemy import String
from credit_engine.domain.base import BaseModel, utc_now


class EntityKind(str, Enum):
    """Kinds of entities that can hold a credit account"""
    TENANT = "tenant"
    ORGANIZATION = "organization"
    LOCATION = "location"


class Entity(BaseModel, table=True):
    """
    Entity - Node in the tenant ownership tree

    Domain Rules:
    - The tenant root has kind TENANT, id == tenant_id and no parent
    - Every other entity has exactly one parent within the same tenant
    - The parent links form a forest (no cycles)
    - inherit_credits makes the entity draw on its parent's credit pool
    """

    __tablename__ = "entities"
    __table_args__ = (
        Index('ix_entities_tenant_parent', 'tenant_id', 'parent_id'),
    )

    id: str = Field(
        sa_column=Column(String(64), primary_key=True),
        description="Entity identifier"
    )

    tenant_id: str = Field(
        index=True,
        description="Owning tenant"
    )

    parent_id: Optional[str] = Field(
        default=None,
        description="Parent entity (None for the tenant root)"
    )

    kind: EntityKind = Field(
        description="tenant, organization or location"
    )

    name: Optional[str] = Field(
        default=None,
        sa_column=Column(String(255), nullable=True),
    )

    inherit_settings: bool = Field(default=False)
    inherit_branding: bool = Field(default=False)
    inherit_credits: bool = Field(
        default=False,
        description="Charge against the nearest non-inheriting ancestor's account"
    )

    is_active: bool = Field(default=True)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_root(self) -> bool:
        return self.parent_id is None
