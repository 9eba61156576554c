"""Argument construction for the fabric CLI."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class FabricCommand:
    argv: tuple[str, ...]

    @property
    def program(self) -> str:
        return self.argv[0]

    @property
    def args(self) -> tuple[str, ...]:
        return self.argv[1:]


class FabricCommandBuilder:
    def __init__(self, fabric_path: str) -> None:
        self.fabric_path = fabric_path
        self.args: list[str] = []

    def version(self) -> FabricCommandBuilder:
        self.args.append("--version")
        return self

    def list_patterns(self) -> FabricCommandBuilder:
        self.args.append("--listpatterns")
        return self

    def list_contexts(self) -> FabricCommandBuilder:
        self.args.append("--listcontexts")
        return self

    def stream(self) -> FabricCommandBuilder:
        self.args.append("--stream")
        return self

    def model(self, model: str) -> FabricCommandBuilder:
        self.args.extend(["--model", model])
        return self

    def pattern(self, pattern: str) -> FabricCommandBuilder:
        self.args.extend(["--pattern", pattern])
        return self

    def context(self, context: str) -> FabricCommandBuilder:
        self.args.extend(["--context", context])
        return self

    def custom_prompt(self, prompt: str) -> FabricCommandBuilder:
        self.args.append(prompt)
        return self

    def extend(self, args: Iterable[str]) -> FabricCommandBuilder:
        self.args.extend(str(a) for a in args)
        return self

    def build(self) -> FabricCommand:
        return FabricCommand(argv=(self.fabric_path, *self.args))


def build_stream_command(
    fabric_path: str,
    *,
    model: str | None = None,
    pattern: str | None = None,
    context: str | None = None,
    custom_prompt: str | None = None,
) -> FabricCommand:
    """Streaming invocation; a pattern wins over a custom prompt."""
    builder = FabricCommandBuilder(fabric_path).stream()
    if model:
        builder.model(model)
    if context:
        builder.context(context)
    if pattern:
        builder.pattern(pattern)
    elif custom_prompt:
        builder.custom_prompt(custom_prompt)
    return builder.build()


def split_listing(stdout: str) -> list[str]:
    """Non-empty, trimmed lines of a listing, in order."""
    return [line.strip() for line in stdout.splitlines() if line.strip()]


__all__ = ["FabricCommand", "FabricCommandBuilder", "build_stream_command", "split_listing"]
