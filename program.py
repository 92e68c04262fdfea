from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from numpy.typing import NDArray


def _freeze_code(statements: Sequence[str]) -> NDArray[Any]:
    data = np.empty(len(statements), dtype=object)
    for i, text in enumerate(statements):
        data[i] = text
    data.flags.writeable = False
    return data


def unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        return value[1:-1]
    return value


@dataclass
class ProgramState:
    """Everything a running program can touch.

    ``code`` is read-only once built. ``ip`` is either a valid index into
    ``code`` or equal to its length, which means there is nothing left to run.
    """

    code: NDArray[Any]
    vars: Dict[str, str] = field(default_factory=dict)
    stack: List[str] = field(default_factory=list)
    ip: int = 0

    @classmethod
    def from_segments(cls, variables: Sequence[str], statements: Sequence[str]) -> "ProgramState":
        # Register line i becomes the variable $i.
        seeded = {str(i): unquote(value) for i, value in enumerate(variables)}
        return cls(code=_freeze_code(statements), vars=seeded)

    def current_instruction(self) -> Optional[str]:
        if self.ip >= len(self.code):
            return None
        return str(self.code[self.ip])

    def advance(self) -> None:
        self.ip += 1

    def jump_to(self, target: int) -> None:
        self.ip = target

    def push(self, value: str) -> None:
        self.stack.append(value)

    def pop(self) -> Optional[str]:
        if not self.stack:
            return None
        return self.stack.pop()

    def get_var(self, name: str) -> Optional[str]:
        return self.vars.get(name)

    def set_var(self, name: str, value: str) -> None:
        self.vars[name] = value

    def copy_var(self, dst: str, src: str) -> None:
        self.vars[dst] = self.vars[src]

    def contains_var(self, name: str) -> bool:
        return name in self.vars

    def code_length(self) -> int:
        return len(self.code)

    def snapshot(self) -> Dict[str, Any]:
        def _render(value: str) -> str:
            if len(value) > 80:
                return value[:77] + "..."
            return value

        return {
            "ip": self.ip,
            "vars": {f"${k}": _render(v) for k, v in self.vars.items()},
            "stack": [_render(v) for v in self.stack],
        }
