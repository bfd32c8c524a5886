"""SQLAlchemy models for specifications, enums, and AI syntheses."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class EnumMixin:
    """Lookup table: {id, name}."""
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(128), nullable=False, unique=True)


class ProductType(EnumMixin, Base):
    __tablename__ = "product_types"


class ProductBrand(EnumMixin, Base):
    __tablename__ = "product_brands"


class Grind(EnumMixin, Base):
    __tablename__ = "grinds"


class NicotineLevel(EnumMixin, Base):
    __tablename__ = "nicotine_levels"


class MoistureLevel(EnumMixin, Base):
    __tablename__ = "moisture_levels"


class ExperienceLevel(EnumMixin, Base):
    __tablename__ = "experience_levels"


class SpecificationStatus(EnumMixin, Base):
    __tablename__ = "spec_statuses"  # draft, published, ...


class TastingNote(EnumMixin, Base):
    __tablename__ = "tasting_notes"


class Cure(EnumMixin, Base):
    __tablename__ = "cures"


class TobaccoType(EnumMixin, Base):
    __tablename__ = "tobacco_types"


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(256), nullable=True)
    email = Column(String(320), nullable=True, unique=True)
    role = Column(String(32), nullable=False, default="user")  # "user", "admin", "AI"
    created_at = Column(DateTime(timezone=True), default=_now)


class Specification(Base):
    """One product specification. User-authored, or AI-synthesized when owned by the AI user."""
    __tablename__ = "specifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    shopify_handle = Column(String(255), nullable=False, index=True)
    product_type_id = Column(Integer, ForeignKey("product_types.id"), nullable=True)
    product_brand_id = Column(Integer, ForeignKey("product_brands.id"), nullable=True)
    grind_id = Column(Integer, ForeignKey("grinds.id"), nullable=False)
    nicotine_level_id = Column(Integer, ForeignKey("nicotine_levels.id"), nullable=False)
    moisture_level_id = Column(Integer, ForeignKey("moisture_levels.id"), nullable=False)
    experience_level_id = Column(Integer, ForeignKey("experience_levels.id"), nullable=False)
    is_fermented = Column(Boolean, default=False, nullable=False)
    is_oral_tobacco = Column(Boolean, default=False, nullable=False)
    is_artisan = Column(Boolean, default=False, nullable=False)
    star_rating = Column(Integer, nullable=False)  # 1-5
    rating_boost = Column(Integer, default=0, nullable=False)
    review = Column(Text, nullable=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    status_id = Column(Integer, ForeignKey("spec_statuses.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)

    product_type = relationship("ProductType")
    product_brand = relationship("ProductBrand")
    grind = relationship("Grind")
    nicotine_level = relationship("NicotineLevel")
    moisture_level = relationship("MoistureLevel")
    experience_level = relationship("ExperienceLevel")
    status = relationship("SpecificationStatus")
    user = relationship("User")

    tasting_note_links = relationship(
        "SpecTastingNote", cascade="all, delete-orphan",
        order_by="SpecTastingNote.tasting_note_id",
    )
    cure_links = relationship(
        "SpecCure", cascade="all, delete-orphan",
        order_by="SpecCure.cure_id",
    )
    tobacco_type_links = relationship(
        "SpecTobaccoType", cascade="all, delete-orphan",
        order_by="SpecTobaccoType.tobacco_type_id",
    )


class SpecTastingNote(Base):
    __tablename__ = "spec_tasting_notes"

    specification_id = Column(Integer, ForeignKey("specifications.id"), primary_key=True)
    tasting_note_id = Column(Integer, ForeignKey("tasting_notes.id"), primary_key=True)

    tasting_note = relationship("TastingNote")


class SpecCure(Base):
    __tablename__ = "spec_cures"

    specification_id = Column(Integer, ForeignKey("specifications.id"), primary_key=True)
    cure_id = Column(Integer, ForeignKey("cures.id"), primary_key=True)

    cure = relationship("Cure")


class SpecTobaccoType(Base):
    __tablename__ = "spec_tobacco_types"

    specification_id = Column(Integer, ForeignKey("specifications.id"), primary_key=True)
    tobacco_type_id = Column(Integer, ForeignKey("tobacco_types.id"), primary_key=True)

    tobacco_type = relationship("TobaccoType")


class AISynthesis(Base):
    """Links a product handle to its synthesized specification.

    shopify_handle is unique at the storage level: two concurrent generates
    for the same handle cannot both commit.
    """
    __tablename__ = "ai_syntheses"
    __table_args__ = (
        UniqueConstraint("shopify_handle", name="uq_ai_syntheses_shopify_handle"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    specification_id = Column(Integer, ForeignKey("specifications.id"), nullable=False, unique=True)
    shopify_handle = Column(String(255), nullable=False)
    ai_model = Column(String(128), nullable=True)
    confidence = Column(Integer, nullable=True)  # 1-3, NULL = unknown
    created_at = Column(DateTime(timezone=True), default=_now)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)

    specification = relationship("Specification")
    sources = relationship(
        "AISynthSource", back_populates="ai_synth",
        cascade="all, delete-orphan", order_by="AISynthSource.id",
    )


class AISynthSource(Base):
    """Per-source audit row: weight and share of the synthesis."""
    __tablename__ = "ai_synth_sources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ai_synth_id = Column(Integer, ForeignKey("ai_syntheses.id"), nullable=False, index=True)
    source_spec_id = Column(Integer, ForeignKey("specifications.id"), nullable=False)
    weight_factor = Column(Float, nullable=False, default=1.0)
    contribution_score = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_now)

    ai_synth = relationship("AISynthesis", back_populates="sources")
    source_spec = relationship("Specification")
