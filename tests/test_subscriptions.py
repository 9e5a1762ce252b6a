"""Tests for the subscription registry."""

from schedwatch.services.subscriptions import SubscriptionRegistry
from schedwatch.services.tree import build_index

from tests.helpers import find, make_tree


def test_get_user_creates_once():
    registry = SubscriptionRegistry()
    user = registry.get_user(42)
    assert registry.get_user(42) is user
    assert registry.count() == 1


def test_subscribe_updates_both_sides():
    registry = SubscriptionRegistry()
    root = make_tree({"A": {"F1": "L1"}})
    user, node = registry.get_user(1), find(root, "A")

    assert registry.subscribe(user, node)
    assert node.id in user.subscriptions
    assert user in node.subscribers
    assert registry.is_subscribed(user, node)


def test_subscribe_twice_is_a_no_op():
    registry = SubscriptionRegistry()
    root = make_tree({"A": {}})
    user, node = registry.get_user(1), find(root, "A")

    registry.subscribe(user, node)
    assert not registry.subscribe(user, node)
    assert user.subscriptions == {node.id}
    assert node.subscribers == {user}


def test_unsubscribe_restores_previous_state():
    registry = SubscriptionRegistry()
    root = make_tree({"A": {}})
    user, node = registry.get_user(1), find(root, "A")

    registry.subscribe(user, node)
    assert registry.unsubscribe(user, node)
    assert user.subscriptions == set()
    assert node.subscribers == set()
    assert not registry.unsubscribe(user, node)


def test_toggle_flips_state():
    registry = SubscriptionRegistry()
    root = make_tree({"A": {}})
    user, node = registry.get_user(1), find(root, "A")

    assert registry.toggle(user, node) is True
    assert registry.toggle(user, node) is False
    assert not registry.is_subscribed(user, node)


def test_prune_drops_ids_missing_from_index():
    registry = SubscriptionRegistry()
    old = make_tree({"A": {}, "B": {}})
    user = registry.get_user(1)
    registry.subscribe(user, find(old, "A"))
    registry.subscribe(user, find(old, "B"))

    new = make_tree({"A": {}})
    assert registry.prune(build_index(new)) == 1
    assert user.subscriptions == {find(new, "A").id}
    assert registry.prune(build_index(new)) == 0
