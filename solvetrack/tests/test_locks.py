"""Tests for the keyed lock registry."""

from solvetrack.core.locks import keyed_lock, registered_lock_count, user_lock


def test_lock_is_registered_only_while_held():
    before = registered_lock_count()

    with keyed_lock("user:1"):
        assert registered_lock_count() == before + 1

    assert registered_lock_count() == before


def test_reentrant_acquire_releases_cleanly():
    before = registered_lock_count()

    with user_lock(7):
        with user_lock(7):
            assert registered_lock_count() == before + 1

    assert registered_lock_count() == before


def test_lock_released_when_body_raises():
    before = registered_lock_count()

    try:
        with keyed_lock("refresh:10.0.0.1:alice"):
            raise RuntimeError("boom")
    except RuntimeError:
        pass

    assert registered_lock_count() == before
