"""Shared fixtures: in-memory database, seed data, stub gateway."""

import os

# Must be set before specsynth.db.session is imported anywhere.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

import json
from typing import Optional

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from specsynth.db.models import (
    Base,
    Cure,
    ExperienceLevel,
    Grind,
    MoistureLevel,
    NicotineLevel,
    ProductBrand,
    ProductType,
    Specification,
    SpecificationStatus,
    SpecCure,
    SpecTastingNote,
    SpecTobaccoType,
    TastingNote,
    TobaccoType,
    User,
)
from specsynth.schemas.domain import SourceSpecification

AI_USER_ID = "00000000-0000-0000-0000-0000000000a1"
AUTHOR_IDS = [f"00000000-0000-0000-0000-00000000000{i}" for i in range(1, 5)]
DRAFT, PUBLISHED = 1, 2


class StubGateway:
    """Records calls; returns a fixed completion or raises a fixed error."""

    model = "stub-model"

    def __init__(self, response: Optional[str] = None, error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.calls = []

    async def generate_completion(self, system_prompt, user_prompt, temperature=0.3,
                                  max_tokens=2048, *, model=None, cancel_event=None):
        self.calls.append({
            "system_prompt": system_prompt,
            "user_prompt": user_prompt,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "model": model,
        })
        if self.error is not None:
            raise self.error
        return self.response


def synthesis_payload(**overrides) -> dict:
    payload = {
        "review": "Balanced, slightly harsh.",
        "star_rating": 4,
        "grind_id": 1,
        "nicotine_level_id": 2,
        "moisture_level_id": 2,
        "experience_level_id": 1,
        "is_fermented": False,
        "is_oral_tobacco": False,
        "is_artisan": True,
        "tasting_note_ids": [1, 5],
        "cure_ids": [2],
        "tobacco_type_ids": [1, 3],
        "confidence_level": 2,
    }
    payload.update(overrides)
    return payload


def synthesis_json(**overrides) -> str:
    return json.dumps(synthesis_payload(**overrides))


def make_source(id: int = 1, **overrides) -> SourceSpecification:
    fields = dict(
        id=id,
        shopify_handle="acme-snuff",
        user_id=AUTHOR_IDS[0],
        product_type_id=1,
        product_brand_id=1,
        grind_id=1,
        nicotine_level_id=2,
        moisture_level_id=1,
        experience_level_id=1,
        is_fermented=False,
        is_oral_tobacco=False,
        is_artisan=True,
        star_rating=4,
        review="Smoky with a bright finish.",
        tasting_note_ids=(1, 3),
        cure_ids=(1,),
        tobacco_type_ids=(),
    )
    fields.update(overrides)
    return SourceSpecification(**fields)


@pytest.fixture
def stub_gateway():
    return StubGateway(response=synthesis_json())


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def seeded(session_factory):
    """Reference rows: statuses, enums, the AI user and four authors."""
    async with session_factory() as session:
        async with session.begin():
            session.add_all([
                SpecificationStatus(id=DRAFT, name="draft"),
                SpecificationStatus(id=PUBLISHED, name="published"),
                ProductType(id=1, name="Nasal Snuff"),
                ProductType(id=2, name="Snus"),
                ProductBrand(id=1, name="Acme"),
                ProductBrand(id=2, name="Wilsons"),
                Grind(id=1, name="Fine"), Grind(id=2, name="Medium"), Grind(id=3, name="Coarse"),
                NicotineLevel(id=1, name="Low"), NicotineLevel(id=2, name="Medium"),
                NicotineLevel(id=3, name="High"),
                MoistureLevel(id=1, name="Dry"), MoistureLevel(id=2, name="Moist"),
                ExperienceLevel(id=1, name="Beginner"), ExperienceLevel(id=2, name="Expert"),
                TastingNote(id=1, name="Smoky"), TastingNote(id=2, name="Floral"),
                TastingNote(id=3, name="Citrus"), TastingNote(id=4, name="Menthol"),
                TastingNote(id=5, name="Sweet"), TastingNote(id=6, name="Earthy"),
                Cure(id=1, name="Fire"), Cure(id=2, name="Air"), Cure(id=3, name="Flue"),
                TobaccoType(id=1, name="Virginia"), TobaccoType(id=2, name="Burley"),
                TobaccoType(id=3, name="Kentucky"),
                User(id=AI_USER_ID, name="AI Synthesizer", email="ai@example.com", role="AI"),
            ])
            session.add_all([
                User(id=author_id, name=f"Author {i}", email=f"author{i}@example.com", role="user")
                for i, author_id in enumerate(AUTHOR_IDS, start=1)
            ])


@pytest.fixture
def add_spec(session_factory, seeded):
    """Insert a user specification; returns its id."""

    async def _add(
        shopify_handle: str = "acme-snuff",
        *,
        user_id: str = AUTHOR_IDS[0],
        star_rating: int = 4,
        review: Optional[str] = "Nice snuff.",
        status_id: int = PUBLISHED,
        grind_id: int = 1,
        nicotine_level_id: int = 2,
        moisture_level_id: int = 1,
        experience_level_id: int = 1,
        product_brand_id: Optional[int] = 1,
        product_type_id: Optional[int] = 1,
        is_fermented: bool = False,
        is_oral_tobacco: bool = False,
        is_artisan: bool = False,
        tasting_note_ids=(),
        cure_ids=(),
        tobacco_type_ids=(),
    ) -> int:
        async with session_factory() as session:
            async with session.begin():
                spec = Specification(
                    shopify_handle=shopify_handle,
                    user_id=user_id,
                    star_rating=star_rating,
                    review=review,
                    status_id=status_id,
                    grind_id=grind_id,
                    nicotine_level_id=nicotine_level_id,
                    moisture_level_id=moisture_level_id,
                    experience_level_id=experience_level_id,
                    product_brand_id=product_brand_id,
                    product_type_id=product_type_id,
                    is_fermented=is_fermented,
                    is_oral_tobacco=is_oral_tobacco,
                    is_artisan=is_artisan,
                    tasting_note_links=[SpecTastingNote(tasting_note_id=i) for i in tasting_note_ids],
                    cure_links=[SpecCure(cure_id=i) for i in cure_ids],
                    tobacco_type_links=[SpecTobaccoType(tobacco_type_id=i) for i in tobacco_type_ids],
                )
                session.add(spec)
                await session.flush()
                return spec.id

    return _add
