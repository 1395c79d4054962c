from __future__ import annotations

import pytest

from shared.models.identifiers import (
    ChannelIdentifier,
    ChannelPlatform,
    UserIdentifier,
    UserPlatform,
)
from shared.models.user import User


@pytest.mark.parametrize(
    "text",
    ["twitch:12345", "discord:98765", "irc:nick", "telegram:42", "local:127.0.0.1"],
)
def test_user_identifier_round_trip(text: str) -> None:
    ident = UserIdentifier.from_str(text)
    assert ident.to_canonical_string() == text
    assert UserIdentifier.from_str(str(ident)) == ident


@pytest.mark.parametrize("mention", ["<@123456>", "<@!123456>"])
def test_discord_mention_parses_to_discord_user(mention: str) -> None:
    assert UserIdentifier.from_str(mention) == UserIdentifier(UserPlatform.DISCORD, "123456")


@pytest.mark.parametrize("text", ["", "twitch", "twitch:", "myspace:1", "<@abc>"])
def test_invalid_user_identifiers_are_rejected(text: str) -> None:
    with pytest.raises(ValueError):
        UserIdentifier.from_str(text)


def test_user_identifiers_are_hashable_values() -> None:
    seen = {UserIdentifier(UserPlatform.TWITCH, "1"), UserIdentifier.from_str("twitch:1")}
    assert len(seen) == 1


def test_channel_equality_ignores_display_name() -> None:
    a = ChannelIdentifier(ChannelPlatform.TWITCH, "1", "old_name")
    b = ChannelIdentifier(ChannelPlatform.TWITCH, "1", "new_name")
    c = ChannelIdentifier(ChannelPlatform.TWITCH, "1")

    assert a == b == c
    assert len({a, b, c}) == 1
    assert ChannelIdentifier(ChannelPlatform.TELEGRAM, "1") != a


def test_channel_round_trip_and_anonymous() -> None:
    channel = ChannelIdentifier(ChannelPlatform.DISCORD_GUILD, "555")
    assert ChannelIdentifier.from_str(channel.to_canonical_string()) == channel

    anonymous = ChannelIdentifier.from_str("anonymous")
    assert anonymous.is_anonymous
    assert anonymous == ChannelIdentifier.anonymous()


def test_merged_user_keeps_primary_ids_and_fills_gaps() -> None:
    primary = User(id=1, twitch_id="t1", irc_name="nick")
    secondary = User(id=2, twitch_id="t2", discord_id="d2")

    merged = primary.merged_with(secondary)

    assert merged.id == 1
    assert merged.twitch_id == "t1"
    assert merged.discord_id == "d2"
    assert merged.irc_name == "nick"
    assert set(merged.identifiers()) == {
        UserIdentifier(UserPlatform.TWITCH, "t1"),
        UserIdentifier(UserPlatform.DISCORD, "d2"),
        UserIdentifier(UserPlatform.IRC, "nick"),
    }
