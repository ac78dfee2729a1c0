"""Input validation for anonymous review requests."""

import re

from .errors import ValidationError
from .models import IMAGE_PATTERN, VIDEO_PATTERN, ReviewDraft, ReviewRequest

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MAX_TITLE_LENGTH = 100
MAX_BODY_LENGTH = 2000
MAX_NAME_LENGTH = 50
MAX_IMAGES = 5
MAX_VIDEOS = 2


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _parse_rating(value) -> int:
    if isinstance(value, bool):
        raise ValidationError("Rating must be a whole number between 1 and 5")
    if isinstance(value, str):
        value = value.strip()
        if not value.isascii() or not value.isdigit():
            raise ValidationError("Rating must be a whole number between 1 and 5")
        value = int(value)
    if isinstance(value, float):
        if not value.is_integer():
            raise ValidationError("Rating must be a whole number between 1 and 5")
        value = int(value)
    if not isinstance(value, int) or not 1 <= value <= 5:
        raise ValidationError("Rating must be a whole number between 1 and 5")
    return value


def validate_request(request: ReviewRequest) -> ReviewDraft:
    """
    Validate and normalise a raw request.

    Raises:
        ValidationError: on the first problem found. Nothing has been
        written at that point.
    """
    business_id = (request.business_id or "").strip()
    body = (request.body or "").strip()
    name = (request.reviewer_name or "").strip()
    email = normalize_email(request.reviewer_email)

    if not business_id or request.rating in (None, "") or not body or not name or not email:
        raise ValidationError(
            "Business ID, rating, content, reviewer name, and email are required"
        )

    rating = _parse_rating(request.rating)

    if not EMAIL_PATTERN.match(email):
        raise ValidationError("Please provide a valid email address")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Reviewer name must be at most {MAX_NAME_LENGTH} characters")
    if len(body) > MAX_BODY_LENGTH:
        raise ValidationError(f"Review content must be at most {MAX_BODY_LENGTH} characters")

    title = (request.title or "").strip() or None
    if title and len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"Title must be at most {MAX_TITLE_LENGTH} characters")

    images, videos = [], []
    for url in request.media or []:
        url = (url or "").strip()
        if IMAGE_PATTERN.search(url):
            images.append(url)
        elif VIDEO_PATTERN.search(url):
            videos.append(url)
        elif url:
            raise ValidationError(f"Unsupported media type: {url}")

    if len(images) > MAX_IMAGES:
        raise ValidationError(f"Maximum {MAX_IMAGES} images allowed per review")
    if len(videos) > MAX_VIDEOS:
        raise ValidationError(f"Maximum {MAX_VIDEOS} videos allowed per review")

    return ReviewDraft(
        business_id=business_id,
        rating=rating,
        body=body,
        reviewer_name=name,
        reviewer_email=email,
        title=title,
        images=tuple(images),
        videos=tuple(videos),
    )
