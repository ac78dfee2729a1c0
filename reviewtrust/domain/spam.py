"""
Spam Scorer - Deterministic Heuristic Spam Detection
====================================================

ARCHITECTURAL DECISION:
- Pure function over the review draft plus recent-activity counts
- Weights and threshold live in SpamPolicy (configurable policy, the
  defaults are starting points, not calibrated constants)
- Never raises: a rule that fails contributes nothing and logs a warning,
  so a scoring bug degrades toward "not spam" instead of blocking reviews

EXTENSIBILITY:
- To add a rule: write a function (draft, activity, policy) -> points and
  register it in RULES with its reason code
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from typing import Callable, List, Tuple

from .models import RecentActivity, ReviewDraft, SpamVerdict

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"(https?://|www\.)\S+", re.IGNORECASE)
EMAIL_IN_TEXT_PATTERN = re.compile(r"@[\w.-]+\.[a-zA-Z]{2,}")
REPEATED_CHAR_PATTERN = re.compile(r"(.)\1{4,}")
WORD_PATTERN = re.compile(r"[a-z']+")

SUPERLATIVES = [
    "amazing", "best", "worst", "terrible", "horrible",
    "awesome", "perfect", "scam", "fraud", "incredible",
]

MAX_SCORE = 100


@dataclass(frozen=True)
class SpamPolicy:
    """Rule weights and thresholds for the spam heuristic."""

    threshold: int = 70

    short_body_length: int = 10
    short_body_weight: int = 20

    all_caps_min_letters: int = 5
    all_caps_weight: int = 15

    repeated_characters_weight: int = 10

    superlative_limit: int = 2
    superlative_weight: int = 15

    link_weight: int = 25
    excessive_links: int = 3
    excessive_links_weight: int = 15

    email_in_body_weight: int = 20

    repetition_min_words: int = 6
    repetition_ratio: float = 0.5
    repetition_weight: int = 15

    extreme_rating_body_length: int = 20
    extreme_rating_weight: int = 15

    suspicious_name_weight: int = 15

    # Applied per attempt once a device has submitted before
    velocity_weight: int = 10


def _short_body(draft: ReviewDraft, activity: RecentActivity, policy: SpamPolicy) -> int:
    return policy.short_body_weight if len(draft.body) < policy.short_body_length else 0


def _all_caps(draft: ReviewDraft, activity: RecentActivity, policy: SpamPolicy) -> int:
    letters = [c for c in draft.body if c.isalpha()]
    if len(letters) < policy.all_caps_min_letters:
        return 0
    return policy.all_caps_weight if all(c.isupper() for c in letters) else 0


def _repeated_characters(draft: ReviewDraft, activity: RecentActivity, policy: SpamPolicy) -> int:
    return policy.repeated_characters_weight if REPEATED_CHAR_PATTERN.search(draft.body) else 0


def _superlative_stacking(draft: ReviewDraft, activity: RecentActivity, policy: SpamPolicy) -> int:
    words = WORD_PATTERN.findall(draft.body.lower())
    hits = sum(1 for word in words if word in SUPERLATIVES)
    return policy.superlative_weight if hits > policy.superlative_limit else 0


def _contains_link(draft: ReviewDraft, activity: RecentActivity, policy: SpamPolicy) -> int:
    return policy.link_weight if URL_PATTERN.search(draft.body) else 0


def _excessive_links(draft: ReviewDraft, activity: RecentActivity, policy: SpamPolicy) -> int:
    links = len(URL_PATTERN.findall(draft.body))
    return policy.excessive_links_weight if links >= policy.excessive_links else 0


def _contains_email(draft: ReviewDraft, activity: RecentActivity, policy: SpamPolicy) -> int:
    return policy.email_in_body_weight if EMAIL_IN_TEXT_PATTERN.search(draft.body) else 0


def _word_repetition(draft: ReviewDraft, activity: RecentActivity, policy: SpamPolicy) -> int:
    words = WORD_PATTERN.findall(draft.body.lower())
    if len(words) < policy.repetition_min_words:
        return 0
    _, top = Counter(words).most_common(1)[0]
    return policy.repetition_weight if top / len(words) >= policy.repetition_ratio else 0


def _extreme_rating_short_body(draft: ReviewDraft, activity: RecentActivity, policy: SpamPolicy) -> int:
    if draft.rating in (1, 5) and len(draft.body) < policy.extreme_rating_body_length:
        return policy.extreme_rating_weight
    return 0


def _suspicious_reviewer_name(draft: ReviewDraft, activity: RecentActivity, policy: SpamPolicy) -> int:
    name = draft.reviewer_name
    if URL_PATTERN.search(name) or "@" in name:
        return policy.suspicious_name_weight
    if not any(c.isalpha() for c in name):
        return policy.suspicious_name_weight
    if sum(c.isdigit() for c in name) >= 3:
        return policy.suspicious_name_weight
    return 0


def _high_velocity(draft: ReviewDraft, activity: RecentActivity, policy: SpamPolicy) -> int:
    attempts = activity.submission_attempts
    return attempts * policy.velocity_weight if attempts > 1 else 0


Rule = Callable[[ReviewDraft, RecentActivity, SpamPolicy], int]

RULES: List[Tuple[str, Rule]] = [
    ("short_body", _short_body),
    ("all_caps", _all_caps),
    ("repeated_characters", _repeated_characters),
    ("superlative_stacking", _superlative_stacking),
    ("contains_link", _contains_link),
    ("excessive_links", _excessive_links),
    ("contains_email", _contains_email),
    ("word_repetition", _word_repetition),
    ("extreme_rating_short_body", _extreme_rating_short_body),
    ("suspicious_reviewer_name", _suspicious_reviewer_name),
    ("high_velocity", _high_velocity),
]


def score_submission(draft: ReviewDraft, activity: RecentActivity,
                     policy: SpamPolicy = SpamPolicy()) -> SpamVerdict:
    """
    Score a review draft.

    Returns:
        SpamVerdict with score clamped to 0..100 and the reason codes of
        every rule that fired.
    """
    total = 0
    reasons = []

    for code, rule in RULES:
        try:
            points = int(rule(draft, activity, policy))
        except Exception as e:
            logger.warning(f"Spam rule '{code}' failed, treating as clean: {e}")
            continue
        if points > 0:
            total += points
            reasons.append(code)

    score = max(0, min(MAX_SCORE, total))
    is_spam = score >= policy.threshold

    if is_spam:
        logger.info(f"Spam verdict for business {draft.business_id}: score={score} reasons={reasons}")
    else:
        logger.debug(f"Spam score {score} below threshold {policy.threshold}")

    return SpamVerdict(score=score, is_spam=is_spam, reasons=tuple(reasons))
