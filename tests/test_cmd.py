from __future__ import annotations

import pytest

from chorus.commands.cmd import CmdCommand
from chorus.commands.shell import ShellCommand
from chorus.core.context import InvocationContext
from chorus.core.errors import ConfigurationError, InvalidArgument, NoPermissions
from chorus.core.permissions import Permission
from conftest import FakeContext, FakeStore, make_settings


async def run(
    command,
    store: FakeStore,
    *arguments: str,
    trigger: str = "cmd",
    permission: Permission = Permission.CHANNEL_MOD,
) -> tuple[str | None, int]:
    ctx = FakeContext(permission=permission)
    user = await store.get_or_create_user(ctx.get_user_identifier())
    channel = await store.get_or_create_channel(ctx.get_channel())
    result = await command.execute(InvocationContext(ctx, user, channel, trigger, list(arguments)))
    return result, channel.id


@pytest.fixture
def cmd(store: FakeStore) -> CmdCommand:
    return CmdCommand(store, make_settings())


@pytest.mark.anyio
async def test_bare_cmd_links_to_channel_dashboard(cmd: CmdCommand, store: FakeStore) -> None:
    response, channel_id = await run(cmd, store, permission=Permission.DEFAULT)

    assert response is not None
    assert response.endswith("/commands")
    assert str(channel_id) in response


@pytest.mark.anyio
async def test_dashboard_link_needs_base_url(store: FakeStore) -> None:
    cmd = CmdCommand(store, make_settings(base_url=""))

    with pytest.raises(ConfigurationError, match="BASE_URL"):
        await run(cmd, store, trigger="help")


@pytest.mark.anyio
async def test_add_duplicate_and_delete(cmd: CmdCommand, store: FakeStore) -> None:
    response, channel_id = await run(cmd, store, "add", "hello", "Hi", "{{", "user", "}}")
    assert response == "Command successfully added"
    assert store.commands[(channel_id, "hello")].action == "Hi {{ user }}"

    response, _ = await run(cmd, store, "add", "hello", "again")
    assert response == "Command already exists"

    response, _ = await run(cmd, store, "del", "hello")
    assert response == "Command successfully removed"

    response, _ = await run(cmd, store, "del", "hello")
    assert response == "Command not found"


@pytest.mark.anyio
async def test_add_parses_options_and_strips_prefix(cmd: CmdCommand, store: FakeStore) -> None:
    response, channel_id = await run(cmd, store, "add", "!slap", "-cd=30", "-perm=mod", "slap!")

    assert response == "Command successfully added"
    command = store.commands[(channel_id, "slap")]
    assert command.cooldown == 30
    assert command.permissions == int(Permission.CHANNEL_MOD)
    assert command.action == "slap!"


@pytest.mark.anyio
async def test_shorthand_triggers(cmd: CmdCommand, store: FakeStore) -> None:
    response, _ = await run(cmd, store, "hello", "Hi", trigger="addcmd")
    assert response == "Command successfully added"

    response, _ = await run(cmd, store, "hello", "Hello", trigger="editcmd")
    assert response == "Command successfully updated"

    response, _ = await run(cmd, store, "hello", trigger="showcmd", permission=Permission.DEFAULT)
    assert response == "Hello"


@pytest.mark.anyio
async def test_mutations_need_channel_mod(cmd: CmdCommand, store: FakeStore) -> None:
    with pytest.raises(NoPermissions):
        await run(cmd, store, "add", "hello", "Hi", permission=Permission.DEFAULT)


@pytest.mark.anyio
async def test_unknown_subcommand(cmd: CmdCommand, store: FakeStore) -> None:
    with pytest.raises(InvalidArgument):
        await run(cmd, store, "frobnicate", "hello")


@pytest.mark.anyio
async def test_triggers_round_trip(cmd: CmdCommand, store: FakeStore) -> None:
    await run(cmd, store, "add", "hello", "Hi")

    response, _ = await run(cmd, store, "set_triggers", "hello", "hello", "bot;hi", "bot")
    assert response == "Successfully updated command triggers"

    response, _ = await run(cmd, store, "get_triggers", "hello", permission=Permission.DEFAULT)
    assert response == "Command triggers: hello bot;hi bot"


@pytest.mark.anyio
async def test_shell_fails_closed_without_opt_in(store: FakeStore) -> None:
    with pytest.raises(NoPermissions):
        await run(ShellCommand(allow_shell=False), store, "echo", "hi", permission=Permission.ADMIN)


@pytest.mark.anyio
async def test_shell_runs_when_enabled(store: FakeStore) -> None:
    response, _ = await run(ShellCommand(allow_shell=True), store, "echo", "hi", permission=Permission.ADMIN)

    assert response == "hi"


@pytest.mark.anyio
@pytest.mark.parametrize(
    ("subcommand", "expected"),
    [
        ("del", "Command successfully removed"),
        ("edit", "Command successfully updated"),
        ("alias", "Aliases set: Hello"),
    ],
)
async def test_aliases_address_the_stored_command(
    cmd: CmdCommand, store: FakeStore, subcommand: str, expected: str
) -> None:
    _, channel_id = await run(cmd, store, "add", "hello", "Hi")
    await run(cmd, store, "alias", "hello", "hi", "hey")

    response, _ = await run(cmd, store, subcommand, "hi", "Hello")

    assert response == expected
    command = store.commands.get((channel_id, "hello"))
    if subcommand == "del":
        assert command is None
    elif subcommand == "edit":
        assert command.action == "Hello"
    else:
        assert command.aliases == ["Hello"]


@pytest.mark.anyio
async def test_triggers_of_an_alias_belong_to_the_command(cmd: CmdCommand, store: FakeStore) -> None:
    await run(cmd, store, "add", "hello", "Hi")
    await run(cmd, store, "alias", "hello", "hi")

    await run(cmd, store, "set_triggers", "hi", "hello bot")

    assert (await run(cmd, store, "get_triggers", "hi"))[0] == "Command triggers: hello bot"


@pytest.mark.anyio
@pytest.mark.parametrize("name", ["ping", "!cmd", "Prefix"])
async def test_builtin_names_are_reserved(store: FakeStore, name: str) -> None:
    cmd = CmdCommand(store, make_settings())
    cmd.reserved = frozenset({"ping", "cmd", "prefix"})

    response, _ = await run(cmd, store, "add", name, "shadowed")

    assert response == "Command name is reserved"
    assert store.commands == {}
