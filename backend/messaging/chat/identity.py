"""Conversation identity derivation.

A conversation between two users is identified by both user identities in
sorted order, joined by an underscore. The result is the same whichever
user sends, so it can be used as the correlation key for messages and for
"is this a new conversation" checks without storing a separate entity.

User identities are fixed-format account ids that never contain the
separator, which keeps the mapping injective over unordered pairs.
"""

CONVERSATION_SEPARATOR = "_"


def derive_conversation_id(user_a: str, user_b: str) -> str:
    """Return the order-independent conversation id for two users.

    Example:
        >>> derive_conversation_id("bob", "alice")
        'alice_bob'
    """
    first, second = sorted((user_a, user_b))
    return f"{first}{CONVERSATION_SEPARATOR}{second}"
