"""
Bookkeeping for who follows which node.

Both directions (``user.subscriptions`` and ``node.subscribers``) are always updated in the
same call, so they never disagree for a node of the committed tree.
"""
import logging
from typing import Dict, Optional

from schedwatch.services.tree import Node, User


class SubscriptionRegistry:
    """Owns the user registry and keeps user and node subscription sets in step."""

    def __init__(self, users: Optional[Dict[int, User]] = None):
        self.users: Dict[int, User] = users if users is not None else {}

    def get_user(self, chat_id: int) -> User:
        user = self.users.get(chat_id)
        if user is None:
            user = User(chat_id=chat_id)
            self.users[chat_id] = user
            logging.info(f"New user {chat_id}")
        return user

    def is_subscribed(self, user: User, node: Node) -> bool:
        return node.id in user.subscriptions

    def subscribe(self, user: User, node: Node) -> bool:
        """Returns False if the user already followed the node."""
        changed = node.id not in user.subscriptions or user not in node.subscribers
        user.subscriptions.add(node.id)
        node.subscribers.add(user)
        if changed:
            logging.info(f"{user.chat_id} subscribed to {node.id}")
        return changed

    def unsubscribe(self, user: User, node: Node) -> bool:
        """Returns False if the user did not follow the node."""
        changed = node.id in user.subscriptions or user in node.subscribers
        user.subscriptions.discard(node.id)
        node.subscribers.discard(user)
        if changed:
            logging.info(f"{user.chat_id} unsubscribed from {node.id}")
        return changed

    def toggle(self, user: User, node: Node) -> bool:
        """Flips the subscription and returns the new state."""
        if self.is_subscribed(user, node):
            self.unsubscribe(user, node)
            return False
        self.subscribe(user, node)
        return True

    def count(self) -> int:
        return len(self.users)

    def prune(self, index: Dict[str, Node]) -> int:
        """Drops subscriptions to ids missing from ``index``; returns how many were dropped."""
        dropped = 0
        for user in self.users.values():
            stale = {node_id for node_id in user.subscriptions if node_id not in index}
            if stale:
                user.subscriptions -= stale
                dropped += len(stale)
        if dropped:
            logging.info(f"Dropped {dropped} subscription(s) to nodes that no longer exist")
        return dropped
