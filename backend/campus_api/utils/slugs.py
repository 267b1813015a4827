"""Slug derivation for course titles."""

import re


def slugify(title: str) -> str:
    """Convert `title` into a lowercase, hyphen-separated slug.

    Punctuation is dropped, runs of whitespace/underscores/hyphens
    collapse into a single hyphen and leading/trailing hyphens are
    stripped, so "Intro to Algorithms!" becomes "intro-to-algorithms".
    """
    slug = title.lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[\s_-]+", "-", slug)
    return slug.strip("-")
