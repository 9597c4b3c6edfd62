"""
Unit tests for department slug normalization and allocation.
"""
import re

import pytest
from unittest.mock import patch

from orgchart.services.slug import (
    FALLBACK_SLUG,
    MAX_SLUG_LENGTH,
    SlugAllocator,
    slugify,
    timestamp_suffix,
    to_base36,
)


class TestSlugify:
    """Tests for slug normalization."""

    def test_lowercases_and_hyphenates(self):
        assert slugify("Product Design") == "product-design"

    def test_collapses_punctuation_runs(self):
        assert slugify("  R&D -- Lab!! ") == "r-d-lab"

    def test_transliterates_accents(self):
        assert slugify("Équipe Données") == "equipe-donnees"

    def test_empty_result_falls_back(self):
        assert slugify("!!!") == FALLBACK_SLUG

    def test_length_is_capped_without_trailing_hyphen(self):
        slug = slugify("a" * 79 + " b" * 10)
        assert len(slug) <= MAX_SLUG_LENGTH
        assert not slug.endswith("-")


class TestBase36:
    """Tests for base-36 rendering."""

    def test_zero(self):
        assert to_base36(0) == "0"

    def test_known_values(self):
        assert to_base36(35) == "z"
        assert to_base36(36) == "10"
        assert to_base36(1_700_000_000_000) == "loyw3v28"

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            to_base36(-1)

    def test_timestamp_suffix_uses_milliseconds(self):
        with patch("orgchart.services.slug.time.time_ns", return_value=1_700_000_000_000_000_000):
            assert timestamp_suffix() == "loyw3v28"


class TestSlugAllocator:
    """Tests for organization-scoped slug allocation."""

    @pytest.mark.asyncio
    async def test_free_slug_is_used_as_is(self, session, org_chart):
        allocator = SlugAllocator(session)
        assert await allocator.allocate(org_chart.org1, "Platform") == "platform"

    @pytest.mark.asyncio
    async def test_collision_gets_timestamp_suffix(self, session, org_chart):
        allocator = SlugAllocator(session)
        slug = await allocator.allocate(org_chart.org1, "Engineering")
        assert re.fullmatch(r"engineering-[0-9a-z]+", slug)
        assert slug not in {"engineering", "backend", "infrastructure", "sales"}

    @pytest.mark.asyncio
    async def test_own_slug_is_not_a_collision(self, session, org_chart):
        allocator = SlugAllocator(session)
        slug = await allocator.allocate(org_chart.org1, "engineering", exclude_id=org_chart.a)
        assert slug == "engineering"

    @pytest.mark.asyncio
    async def test_other_organization_slug_is_not_a_collision(self, session, org_chart):
        allocator = SlugAllocator(session)
        # "sales" exists only in org1
        assert await allocator.allocate(org_chart.org2, "Sales") == "sales"

    @pytest.mark.asyncio
    async def test_is_taken(self, session, org_chart):
        allocator = SlugAllocator(session)
        assert await allocator.is_taken(org_chart.org1, "backend") is True
        assert await allocator.is_taken(org_chart.org1, "backend", exclude_id=org_chart.b) is False
        assert await allocator.is_taken(org_chart.org2, "backend") is False
