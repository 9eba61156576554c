from __future__ import annotations

from native_hosts.tapestry.fabric import FabricCommandBuilder, build_stream_command, split_listing

FABRIC = "/usr/local/bin/fabric-ai"


def test_builder_simple_flags() -> None:
    assert FabricCommandBuilder(FABRIC).version().build().argv == (FABRIC, "--version")
    assert FabricCommandBuilder(FABRIC).list_patterns().build().args == ("--listpatterns",)
    assert FabricCommandBuilder(FABRIC).list_contexts().build().args == ("--listcontexts",)


def test_builder_chaining_keeps_order() -> None:
    command = (
        FabricCommandBuilder(FABRIC)
        .stream()
        .model("gpt-4")
        .pattern("summarize")
        .extend(["--temperature", 0.5])
        .build()
    )

    assert command.program == FABRIC
    assert command.args == ("--stream", "--model", "gpt-4", "--pattern", "summarize", "--temperature", "0.5")


def test_stream_command_with_pattern() -> None:
    command = build_stream_command(FABRIC, model="gpt-4", pattern="summarize", context="work")
    assert command.args == ("--stream", "--model", "gpt-4", "--context", "work", "--pattern", "summarize")


def test_stream_command_pattern_wins_over_custom_prompt() -> None:
    command = build_stream_command(FABRIC, pattern="summarize", custom_prompt="ignored")
    assert command.args == ("--stream", "--pattern", "summarize")


def test_stream_command_custom_prompt_is_positional() -> None:
    command = build_stream_command(FABRIC, custom_prompt="Summarize in three bullets")
    assert command.args == ("--stream", "Summarize in three bullets")


def test_stream_command_skips_empty_options() -> None:
    command = build_stream_command(FABRIC, model="", pattern=None, context="", custom_prompt="")
    assert command.args == ("--stream",)


def test_split_listing() -> None:
    assert split_listing("summarize\nextract\n") == ["summarize", "extract"]
    assert split_listing("  a  \r\n\n b\n") == ["a", "b"]
    assert split_listing("") == []
