from __future__ import annotations

from unittest.mock import AsyncMock

import httpx
import pytest

from chorus.core.context import InvocationContext
from chorus.core.errors import GenericError, MissingArgument, TemplateRenderError
from chorus.templates import TemplateEngine, build_helpers, forsencode
from chorus.templates.engine import normalize_action
from conftest import FakeContext, FakeStore, make_settings
from shared.models.identifiers import ChannelIdentifier, ChannelPlatform


async def make_invocation(store: FakeStore, arguments: list[str], ctx: FakeContext | None = None) -> InvocationContext:
    ctx = ctx or FakeContext()
    user = await store.get_or_create_user(ctx.get_user_identifier())
    channel = await store.get_or_create_channel(ctx.get_channel())
    return InvocationContext(ctx, user, channel, "test", arguments)


def make_engine(store: FakeStore, **clients) -> TemplateEngine:
    settings = make_settings(max_sleep=0.01)
    return TemplateEngine(build_helpers(settings=settings, store=store, http=AsyncMock(), **clients))


def test_handlebars_index_is_normalized_inside_tags_only() -> None:
    assert normalize_action("Hi {{arguments.[0]}} and {{ arguments.[12] }}") == (
        "Hi {{arguments[0]}} and {{ arguments[12] }}"
    )
    assert normalize_action("literal .[0] text") == "literal .[0] text"


@pytest.mark.anyio
async def test_choose_always_returns_one_of_its_options(store: FakeStore) -> None:
    engine = make_engine(store)
    invocation = await make_invocation(store, [])

    results = {await engine.render('{{ choose("a", "b", "c") }}', invocation) for _ in range(30)}

    assert results <= {"a", "b", "c"}
    assert results


@pytest.mark.anyio
async def test_render_variables(store: FakeStore) -> None:
    engine = make_engine(store)
    invocation = await make_invocation(store, ["one", "two"])

    output = await engine.render("{{ user }}|{{ args }}|{{ arguments|length }}|{{ platform }}", invocation)

    assert output == "World|one two|2|irc"


@pytest.mark.anyio
async def test_missing_variable_is_an_error_not_blank(store: FakeStore) -> None:
    engine = make_engine(store)
    invocation = await make_invocation(store, [])

    with pytest.raises(TemplateRenderError):
        await engine.render("{{ arguments[0] }}", invocation)


@pytest.mark.anyio
async def test_syntax_error_is_a_render_error(store: FakeStore) -> None:
    engine = make_engine(store)
    invocation = await make_invocation(store, [])

    with pytest.raises(TemplateRenderError, match="template error"):
        await engine.render("{{ unclosed ", invocation)


@pytest.mark.anyio
async def test_empty_output_means_no_response(store: FakeStore) -> None:
    engine = make_engine(store)
    invocation = await make_invocation(store, [])

    assert await engine.render("  {{ sleep(5) }}  ", invocation) is None


@pytest.mark.anyio
async def test_user_scratch_storage(store: FakeStore) -> None:
    engine = make_engine(store)
    invocation = await make_invocation(store, ["blue"])

    await engine.render('{{ user_set("color", arguments[0]) }}', invocation)
    output = await engine.render('{{ user_get("color") }} / {{ user_get("size", "unknown") }}', invocation)

    assert output == "blue / unknown"
    assert store.user_data[(invocation.user.id, "color")] == "blue"


@pytest.mark.anyio
async def test_channel_counter(store: FakeStore) -> None:
    engine = make_engine(store)
    invocation = await make_invocation(store, [])
    action = '{% set n = channel_get("count", 0)|int + 1 %}{{ channel_set("count", n) }}{{ n }}'

    assert await engine.render(action, invocation) == "1"
    assert await engine.render(action, invocation) == "2"


@pytest.mark.anyio
async def test_weather_reads_location_set_in_template(store: FakeStore) -> None:
    weather = AsyncMock()
    weather.describe.return_value = "Riga, LV: 3.0°C"
    engine = make_engine(store, weather=weather)
    invocation = await make_invocation(store, [])

    output = await engine.render('{% set location = "Riga" %}{{ weather() }}', invocation)

    assert output == "Riga, LV: 3.0°C"
    weather.describe.assert_awaited_once_with("Riga")


@pytest.mark.anyio
async def test_weather_falls_back_to_user_data_then_fails(store: FakeStore) -> None:
    weather = AsyncMock()
    weather.describe.return_value = "Oslo"
    engine = make_engine(store, weather=weather)
    invocation = await make_invocation(store, [])

    with pytest.raises(MissingArgument):
        await engine.render("{{ weather() }}", invocation)

    await store.set_user_data(invocation.user.id, "location", "Oslo")
    assert await engine.render("{{ weather() }}", invocation) == "Oslo"


@pytest.mark.anyio
async def test_trivia_fields_are_addressable(store: FakeStore) -> None:
    trivia = AsyncMock()
    trivia.random_question.return_value = {"question": "2+2?", "answer": "4", "category": "Math"}
    engine = make_engine(store, trivia=trivia)
    invocation = await make_invocation(store, [])

    output = await engine.render("{% set q = trivia() %}[{{ q.category }}] {{ q.question }}", invocation)

    assert output == "[Math] 2+2?"


@pytest.mark.anyio
async def test_unconfigured_integration_is_undefined(store: FakeStore) -> None:
    engine = make_engine(store)
    invocation = await make_invocation(store, [])

    with pytest.raises(TemplateRenderError, match="weather"):
        await engine.render("{{ weather('Riga') }}", invocation)


@pytest.mark.anyio
async def test_http_failure_in_helper_names_the_helper(store: FakeStore) -> None:
    finnhub = AsyncMock()
    finnhub.describe.side_effect = httpx.ConnectError("unreachable")
    engine = make_engine(store, finnhub=finnhub)
    invocation = await make_invocation(store, [])

    with pytest.raises(TemplateRenderError, match="^stock: unreachable"):
        await engine.render("{{ stock('AAPL') }}", invocation)


@pytest.mark.anyio
async def test_json_helper_walks_paths(store: FakeStore) -> None:
    engine = make_engine(store)
    invocation = await make_invocation(store, [])

    output = await engine.render("""{{ json('{"a": {"b": [10, 20]}}', "a.b.1") }}""", invocation)

    assert output == "20"


FORSENCODED = (
    "FÖRsen FOrSeN FORSen FORSen FORSEN fOrsen ForSEN FORSEN ForsEn FORSen FOrSen fOrseN fOrsen 🤓"
)


@pytest.mark.anyio
async def test_forsencode_helpers(store: FakeStore) -> None:
    engine = make_engine(store)
    invocation = await make_invocation(store, [])

    assert await engine.render('{{ forsencode_encode("  Hello world! 🤓 ") }}', invocation) == FORSENCODED
    assert await engine.render(f'{{{{ forsencode_decode("{FORSENCODED}") }}}}', invocation) == "Hello world! 🤓"


@pytest.mark.parametrize("text", ["a", "a b", "🤓 a", "🤓a", "x 🤓🤓 y", "{{ 1 }}"])
def test_forsencode_decodes_what_it_encodes(text: str) -> None:
    assert forsencode.decode(forsencode.encode(text)) == text


@pytest.mark.anyio
async def test_spotify_playlist_refreshes_expired_token(store: FakeStore) -> None:
    expired = httpx.HTTPStatusError(
        "401", request=httpx.Request("GET", "https://api.spotify.com"), response=httpx.Response(401)
    )
    spotify = AsyncMock()
    spotify.get_current_playlist.side_effect = [expired, "https://open.spotify.com/playlist/1"]
    spotify.refresh_access_token.return_value = "fresh"
    engine = make_engine(store, spotify=spotify)
    invocation = await make_invocation(store, [])
    await store.set_user_data(invocation.user.id, "spotify_access_token", "stale")
    await store.set_user_data(invocation.user.id, "spotify_refresh_token", "refresh")

    output = await engine.render("{{ spotify_playlist() }}", invocation)

    assert output == "https://open.spotify.com/playlist/1"
    assert spotify.get_current_playlist.await_args_list[-1].args == ("fresh",)
    assert store.user_data[(invocation.user.id, "spotify_access_token")] == "fresh"


@pytest.mark.anyio
async def test_twitch_commercial_uses_refreshed_broadcaster_token(store: FakeStore) -> None:
    expired = httpx.HTTPStatusError(
        "401", request=httpx.Request("POST", "https://api.twitch.tv"), response=httpx.Response(401)
    )
    twitch = AsyncMock()
    twitch.start_commercial.side_effect = [expired, {"length": 60}]
    twitch.refresh_user_token.return_value = ("new-access", "new-refresh")
    engine = make_engine(store, twitch=twitch)
    ctx = FakeContext(channel=ChannelIdentifier(ChannelPlatform.TWITCH, "42"))
    invocation = await make_invocation(store, [], ctx)
    await store.upsert_token("42", "old-access", "old-refresh")

    assert await engine.render("{{ twitch_commercial(60) }}", invocation) is None

    twitch.refresh_user_token.assert_awaited_once_with("old-refresh")
    twitch.start_commercial.assert_awaited_with("42", 60, "new-access")
    assert store.tokens["42"].token == "new-access"


@pytest.mark.anyio
async def test_twitch_commercial_needs_an_authorized_broadcaster(store: FakeStore) -> None:
    engine = make_engine(store, twitch=AsyncMock())
    ctx = FakeContext(channel=ChannelIdentifier(ChannelPlatform.TWITCH, "42"))
    invocation = await make_invocation(store, [], ctx)

    with pytest.raises(GenericError, match="not authorized"):
        await engine.render("{{ twitch_commercial() }}", invocation)
