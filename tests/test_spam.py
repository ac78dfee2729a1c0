"""Tests for the heuristic spam scorer."""

import pytest

from reviewtrust.domain import spam
from reviewtrust.domain.models import RecentActivity, ReviewDraft
from reviewtrust.domain.spam import SpamPolicy, score_submission

CLEAN_BODY = "The food was fresh and the staff were friendly. Would come back again."


def _draft(**overrides):
    fields = dict(
        business_id="biz-1",
        rating=4,
        body=CLEAN_BODY,
        reviewer_name="Jane Doe",
        reviewer_email="jane@example.com",
    )
    fields.update(overrides)
    return ReviewDraft(**fields)


def test_clean_review_scores_zero():
    verdict = score_submission(_draft(), RecentActivity())
    assert verdict.score == 0
    assert not verdict.is_spam
    assert verdict.reasons == ()


def test_obvious_spam_is_flagged():
    draft = _draft(
        rating=5,
        body="AMAZING BEST PERFECT DEAL!!!!! VISIT HTTP://SPAM.EXAMPLE WWW.CHEAP.EXAMPLE",
        reviewer_name="Buyer123",
    )
    verdict = score_submission(draft, RecentActivity())
    assert verdict.is_spam
    assert verdict.score == 80
    assert set(verdict.reasons) == {
        "all_caps", "repeated_characters", "superlative_stacking",
        "contains_link", "suspicious_reviewer_name",
    }


@pytest.mark.parametrize("body,reason", [
    ("Too short", "short_body"),
    ("Contact me at deals@spam.example for more", "contains_email"),
    ("good good good good good good food", "word_repetition"),
    ("see http://a.example http://b.example http://c.example", "excessive_links"),
])
def test_individual_rules(body, reason):
    verdict = score_submission(_draft(body=body), RecentActivity())
    assert reason in verdict.reasons


def test_extreme_rating_with_short_body():
    verdict = score_submission(_draft(rating=1, body="Bad place, avoid."), RecentActivity())
    assert "extreme_rating_short_body" in verdict.reasons
    assert "extreme_rating_short_body" not in score_submission(_draft(rating=3, body="Bad place, avoid."),
                                                              RecentActivity()).reasons


def test_velocity_scales_with_device_attempts():
    verdict = score_submission(_draft(), RecentActivity(same_device=2))
    assert verdict.reasons == ("high_velocity",)
    assert verdict.score == 30


def test_score_is_clamped_to_100():
    policy = SpamPolicy(velocity_weight=90)
    verdict = score_submission(_draft(), RecentActivity(same_device=5), policy)
    assert verdict.score == 100


def test_threshold_is_policy():
    draft = _draft(body="Visit http://deals.example today for great food")
    assert not score_submission(draft, RecentActivity()).is_spam
    assert score_submission(draft, RecentActivity(), SpamPolicy(threshold=25)).is_spam


def test_failing_rule_contributes_nothing(monkeypatch):
    def broken(draft, activity, policy):
        raise RuntimeError("boom")

    monkeypatch.setattr(spam, "RULES", [("broken", broken)] + spam.RULES)
    verdict = score_submission(_draft(), RecentActivity())
    assert verdict.score == 0
    assert "broken" not in verdict.reasons
