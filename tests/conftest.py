"""Shared fixtures for the SegLang test suite."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import pytest

from interpreter import Interpreter
from program import ProgramState


@dataclass
class Console:
    """In-memory stand-in for stdin/stdout."""

    inputs: List[str] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)

    def read(self) -> str:
        if not self.inputs:
            raise EOFError
        return self.inputs.pop(0)

    def write(self, text: str) -> None:
        self.outputs.append(text)


def frame(registers: Sequence[str], code: Sequence[str]) -> str:
    """Build program text with both segments, indexing lines from 0."""
    lines = ["BEGIN_REGISTER_SEGMENT"]
    lines += [f"{i} {value}" for i, value in enumerate(registers)]
    lines.append("END_REGISTER_SEGMENT")
    lines.append("BEGIN_CODE_SEGMENT")
    lines += [f"{i} {statement}" for i, statement in enumerate(code)]
    lines.append("END_CODE_SEGMENT")
    return "\n".join(lines) + "\n"


@pytest.fixture
def console() -> Console:
    return Console()


@pytest.fixture
def frame_program():
    return frame


@pytest.fixture
def make_interpreter(console):
    def _make(source: str = "", *, verbose: bool = False) -> Interpreter:
        return Interpreter(
            source=source,
            filename="<string>",
            verbose=verbose,
            input_provider=console.read,
            output_sink=console.write,
        )

    return _make


@pytest.fixture
def make_state():
    def _make(code: Sequence[str], variables: Optional[Dict[str, str]] = None) -> ProgramState:
        state = ProgramState.from_segments([], code)
        state.vars.update(variables or {})
        return state

    return _make
