from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .url_norm import derive_title, is_valid_url, normalize_url

URL_REQUIRED = "URL is required"
URL_INVALID = "Please enter a valid URL"


@dataclass(frozen=True)
class Submission:
    url: str
    title: str


@dataclass(frozen=True)
class FormResult:
    submission: Optional[Submission] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.submission is not None


def prepare_submission(url: str, title: str = "", *, title_max_chars: int = 120) -> FormResult:
    """Validate and normalize an add-bookmark form.

    Returns the inline error shown under the url input when the input is
    empty or malformed; such input never reaches the backend.
    """
    trimmed = (url or "").strip()
    if not trimmed:
        return FormResult(error=URL_REQUIRED)
    if not is_valid_url(trimmed):
        return FormResult(error=URL_INVALID)

    final_url = normalize_url(trimmed)
    final_title = (title or "").strip() or derive_title(final_url)
    if title_max_chars > 0:
        final_title = final_title[:title_max_chars]
    return FormResult(submission=Submission(url=final_url, title=final_title))


def suggest_title(url: str, current_title: str = "") -> str:
    """Title to pre-fill while the user is typing a url."""
    if current_title:
        return current_title
    if len(url) > 5 and is_valid_url(url):
        return derive_title(normalize_url(url))
    return ""
