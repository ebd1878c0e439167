"""
Utility functions for Browser Pilot.

Provides helpers for text processing, selectors, and general utilities.
"""

import re
from typing import Optional


def truncate_text(text: str, max_chars: int, suffix: str = "...") -> str:
    """Truncate text to a maximum number of characters.

    Args:
        text: Text to truncate
        max_chars: Maximum number of characters
        suffix: Suffix to add when truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_chars:
        return text
    if max_chars <= len(suffix):
        return text[:max_chars]
    return text[:max_chars - len(suffix)] + suffix


def clean_text(text: str) -> str:
    """Collapse runs of whitespace and strip the ends."""
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def extract_json_from_response(response: str) -> Optional[str]:
    """Extract JSON from a response that might contain markdown or extra text.

    Args:
        response: Raw response string

    Returns:
        Extracted JSON string, or None if not found
    """
    # Code blocks first
    code_block_pattern = r'```(?:json)?\s*(\{[\s\S]*?\})\s*```'
    match = re.search(code_block_pattern, response)
    if match:
        return match.group(1)

    json_pattern = r'\{[\s\S]*\}'
    match = re.search(json_pattern, response)
    if match:
        return match.group(0)

    return None


def format_selector(selector: str) -> str:
    """Normalize a selector for Playwright.

    Args:
        selector: Raw selector string

    Returns:
        Normalized selector
    """
    selector = selector.strip()

    if selector.startswith(('text=', 'css=', 'xpath=', 'id=', '//')):
        return selector

    # Plain words with no CSS punctuation read as visible text
    if ' ' in selector and not any(c in selector for c in '.#[]:>+~='):
        return f'text="{selector}"'

    return selector


def ensure_scheme(url: str) -> str:
    """Prefix ``https://`` when a URL has no scheme."""
    url = url.strip()
    if re.match(r'^[a-zA-Z][a-zA-Z0-9+.-]*:', url):
        return url
    return "https://" + url


def slugify(text: str, max_length: int = 30) -> str:
    """Convert text to a filesystem-safe slug."""
    slug = re.sub(r'[^\w\s-]', '', text.lower())
    slug = re.sub(r'[-\s]+', '_', slug).strip('_')
    return slug[:max_length] or "run"


def is_password_field(selector: str) -> bool:
    """Check if a selector likely refers to a password field."""
    password_patterns = [
        r'password',
        r'type=["\']?password',
        r'#pass',
        r'\.pass',
        r'passwd',
        r'pwd',
    ]
    selector_lower = selector.lower()
    return any(re.search(p, selector_lower) for p in password_patterns)
