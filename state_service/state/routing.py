"""
Routing Key Parser

Device state events are published on routing keys of the form

    {user_id}.$cloud.device.{device_id}.channel.{channel_id}.event.state

The pattern below is the wire contract. Its separators are unescaped dots,
so any single character is accepted where a dot is expected
("alice#$cloud.device..." parses too). Keep it that way: publishers in the
field rely on the loose match.
"""

import re
from dataclasses import dataclass

ROUTING_KEY_PATTERN = re.compile(
    r"^(?P<user_id>[a-zA-Z0-9\-_]+)"
    r".\$cloud"
    r".device.(?P<device_id>\w+)"
    r".channel.(?P<channel_id>[a-zA-Z0-9\-_]+)"
    r".event.state$",
    re.ASCII,
)


@dataclass(frozen=True)
class Identity:
    """Who a state event belongs to."""

    user_id: str
    device_id: str
    channel_id: str


def parse_routing_key(routing_key: str) -> Identity | None:
    """
    Extract the identity encoded in a routing key.

    The whole key must match; a trailing newline or any extra segment is a
    mismatch.

    Returns:
        Identity, or None when the key does not match
    """
    match = ROUTING_KEY_PATTERN.fullmatch(routing_key)
    if match is None:
        return None
    return Identity(
        user_id=match.group("user_id"),
        device_id=match.group("device_id"),
        channel_id=match.group("channel_id"),
    )
