"""
Slug allocation for department names.

Slugs are unique per organization. A collision is resolved by appending a
base-36 millisecond timestamp instead of probing for a free counter.
"""
import re
import string
import time
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from unidecode import unidecode

from orgchart.models.department import Department


MAX_SLUG_LENGTH = 80
FALLBACK_SLUG = "department"

_BASE36_ALPHABET = string.digits + string.ascii_lowercase


def slugify(value: str) -> str:
    """Generate a URL-safe slug from a department name."""
    slug = unidecode(value).lower()
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    slug = slug.strip("-")[:MAX_SLUG_LENGTH].rstrip("-")
    return slug or FALLBACK_SLUG


def to_base36(number: int) -> str:
    """Render a non-negative integer in base 36."""
    if number < 0:
        raise ValueError("number must be non-negative")
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def timestamp_suffix() -> str:
    """Base-36 rendering of the current epoch milliseconds."""
    return to_base36(time.time_ns() // 1_000_000)


class SlugAllocator:
    """Allocates organization-unique department slugs."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def is_taken(
        self,
        organization_id: str,
        slug: str,
        exclude_id: Optional[str] = None,
    ) -> bool:
        """Check whether another department in the organization uses the slug."""
        stmt = select(Department.id).where(
            Department.organization_id == organization_id,
            Department.slug == slug,
        )
        if exclude_id is not None:
            stmt = stmt.where(Department.id != exclude_id)
        result = await self.db.execute(stmt.limit(1))
        return result.scalar_one_or_none() is not None

    async def allocate(
        self,
        organization_id: str,
        desired_name: str,
        exclude_id: Optional[str] = None,
    ) -> str:
        """
        Compute the slug for a department name.

        Args:
            organization_id: Organization the slug must be unique in.
            desired_name: Department name to derive the slug from.
            exclude_id: Department being renamed; its own slug is not a collision.

        Returns:
            The normalized slug, suffixed with a timestamp when it is taken.
        """
        slug = slugify(desired_name)
        if await self.is_taken(organization_id, slug, exclude_id):
            slug = f"{slug}-{timestamp_suffix()}"
        return slug
