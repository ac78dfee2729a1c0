"""Tests for rating snapshot recomputation."""

import pytest

from reviewtrust.application.ratings import RatingAggregator

from .conftest import BUSINESS_ID, OTHER_BUSINESS_ID


def test_recompute_over_published_reviews(publish, pipeline):
    for rating in (5, 5, 5, 1):
        publish(rating=rating)

    snapshot = pipeline.rating(BUSINESS_ID)
    assert snapshot.average == pytest.approx(4.0)
    assert snapshot.count == 4

    publish(rating=1)
    snapshot = pipeline.rating(BUSINESS_ID)
    assert snapshot.average == pytest.approx(3.4)
    assert snapshot.count == 5


def test_unverified_reviews_do_not_count(publish, pipeline, make_review):
    publish(rating=5)
    pipeline.submit(make_review(rating=1))

    snapshot = pipeline.rating(BUSINESS_ID)
    assert snapshot.average == pytest.approx(5.0)
    assert snapshot.count == 1


def test_business_without_reviews_has_empty_snapshot(pipeline):
    snapshot = pipeline.rating(OTHER_BUSINESS_ID)
    assert snapshot.is_empty
    assert snapshot.average == 0.0


def test_recompute_returns_prior_and_new(publish, db, clock):
    publish(rating=4)
    aggregator = RatingAggregator(db, db, clock=clock)

    prior, new = aggregator.recompute(BUSINESS_ID)
    assert prior.count == 1
    assert new.count == 1
    assert new.recomputed_at == clock()
