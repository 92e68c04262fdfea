from __future__ import annotations
import json
import operator
import os
import re
import sys
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Pattern, Tuple

from errors import SegError
from loader import load as load_segments
from program import ProgramState, unquote


class SegRuntimeError(SegError):
    """Raised for runtime faults. Always fatal for the run."""

    def __init__(
        self,
        message: str,
        *,
        state: Optional[str] = None,
        ip: Optional[int] = None,
        instruction: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.state = state
        self.ip = ip
        self.instruction = instruction
        self.step_index: Optional[int] = None


class State(Enum):
    EXECUTE = "EXECUTE"
    ASSIGN = "ASSIGN"
    GOTO = "GOTO"
    IF = "IF"
    OUTPUT = "OUTPUT"
    MATH = "MATH"
    END = "END"


# A handler hands the program back together with the next state; None ends the run.
Transition = Tuple[ProgramState, Optional[State]]
Handler = Callable[[ProgramState], Transition]

# Order matters: an if statement also carries a goto clause.
KEYWORDS: List[Tuple[Pattern[str], State]] = [
    (re.compile(r"^let\b"), State.ASSIGN),
    (re.compile(r"^if\b"), State.IF),
    (re.compile(r"^goto\b"), State.GOTO),
    (re.compile(r"^quit\b"), State.END),
    (re.compile(r"^output\b"), State.OUTPUT),
]

ASSIGN_LITERAL = re.compile(r'^let\s+\$(\w+)\s*=\s*(\d+|"[^"]*")$')
ASSIGN_POP = re.compile(r"^let\s+\$(\w+)\s*=\s*pop$")
ASSIGN_MATH = re.compile(r"^let\s+\$(\w+)\s*=\s*\$(\w+)\s*([-+*/])\s*\$(\w+)$")
ASSIGN_INPUT = re.compile(r"^let\s+\$(\w+)\s*=\s*input$")
ASSIGN_COPY = re.compile(r"^let\s+\$(\w+)\s*=\s*\$(\w+)$")
GOTO_STATEMENT = re.compile(r"^goto\s+(\d+)$")
IF_STATEMENT = re.compile(r"^if\s+\$(\w+)\s*(<=|>=|!=|<|>|=)\s*\$(\w+)\s+goto\s+(\d+)$")
OUTPUT_STATEMENT = re.compile(r"^output\s+\$(\w+)$")
INTEGER = re.compile(r"^[-+]?\d+$")

# Values are strings, so comparisons are lexicographic.
COMPARISONS: Dict[str, Callable[[str, str], bool]] = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "=": operator.eq,
    "!=": operator.ne,
}

ARITHMETIC: Dict[str, Callable[[int, int], int]] = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
}


def truncating_divmod(a: int, b: int) -> Tuple[int, int]:
    """Quotient rounded toward zero; the remainder takes the sign of ``a``."""
    quotient = abs(a) // abs(b)
    if (a < 0) != (b < 0):
        quotient = -quotient
    return quotient, a - b * quotient


@contextmanager
def unlimited_int_digits() -> Iterator[None]:
    """Lift the int<->str digit limit of Python 3.11+ for the duration of the block."""
    get_limit = getattr(sys, "get_int_max_str_digits", None)
    if get_limit is None:
        yield
        return
    previous = get_limit()
    sys.set_int_max_str_digits(0)
    try:
        yield
    finally:
        sys.set_int_max_str_digits(previous)


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    rule: str
    ip: Optional[int]
    instruction: Optional[str]
    env_snapshot: Optional[Dict[str, Any]]


class StateLogger:
    def __init__(self, verbose: bool) -> None:
        self.verbose = verbose
        self.entries: List[StateEntry] = []
        self.next_state_index = 0

    def record(
        self,
        *,
        rule: str,
        ip: Optional[int],
        instruction: Optional[str],
        env_snapshot: Optional[Dict[str, Any]] = None,
    ) -> StateEntry:
        step_index = self.next_state_index
        entry = StateEntry(
            step_index=step_index,
            state_id=f"s_{step_index:06d}",
            rule=rule,
            ip=ip,
            instruction=instruction,
            env_snapshot=env_snapshot,
        )
        self.entries.append(entry)
        self.next_state_index += 1
        return entry

    @property
    def last(self) -> Optional[StateEntry]:
        return self.entries[-1] if self.entries else None


class Interpreter:
    def __init__(
        self,
        *,
        source: str,
        filename: str,
        verbose: bool = False,
        input_provider: Optional[Callable[[], str]] = None,
        output_sink: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.source = source
        self.filename = filename if filename == "<string>" else os.path.abspath(filename)
        self.verbose = verbose
        self.input_provider = input_provider or (lambda: input())
        self.output_sink = output_sink or (lambda text: print(text))
        self.logger = StateLogger(verbose=verbose)
        self.logger.record(rule="SEED", ip=None, instruction="<seed>")
        self.io_log: List[Dict[str, Any]] = []
        self._handlers: Dict[State, Handler] = {
            State.EXECUTE: self._execute,
            State.ASSIGN: self._assign,
            State.GOTO: self._goto,
            State.IF: self._if,
            State.OUTPUT: self._output,
            State.MATH: self._math,
            State.END: self._end,
        }

    def load(self) -> ProgramState:
        variables, statements = load_segments(self.source)
        return ProgramState.from_segments(variables, statements)

    def run(self) -> int:
        program = self.load()
        _, code = self.execute(program)
        return code

    def execute(self, program: ProgramState) -> Tuple[ProgramState, int]:
        """Drive the state machine from EXECUTE until END hands back control."""
        state: Optional[State] = State.EXECUTE
        while state is not None:
            program, state = self._step(state, program)
        return program, 0

    def dispatch(self, state: State, program: ProgramState) -> Transition:
        handler = self._handlers.get(state)
        if handler is None:
            raise SegRuntimeError(f"No handler for state {state.name}")
        return handler(program)

    def _step(self, state: State, program: ProgramState) -> Transition:
        ip = program.ip
        instruction = program.current_instruction()
        try:
            self._log_step(rule=state.name, program=program)
            program, next_state = self.dispatch(state, program)
        except SegRuntimeError as error:
            self._annotate(error, state, ip, instruction)
            raise
        except Exception as exc:
            wrapped = SegRuntimeError(f"Internal interpreter error: {exc}")
            self._annotate(wrapped, state, ip, instruction)
            raise wrapped from exc
        return program, next_state

    def _annotate(self, error: SegRuntimeError, state: State, ip: int, instruction: Optional[str]) -> None:
        if error.state is None:
            error.state = state.name
        if error.ip is None:
            error.ip = ip
        if error.instruction is None:
            error.instruction = instruction
        if error.step_index is None and self.logger.last is not None:
            error.step_index = self.logger.last.step_index

    # ---- handlers ----

    def _execute(self, program: ProgramState) -> Transition:
        text = program.current_instruction()
        if text is None:
            return program, State.END
        stripped = text.strip()
        for pattern, state in KEYWORDS:
            if pattern.match(stripped):
                return program, state
        raise SegRuntimeError(f"Unknown instruction: `{text}`")

    def _assign(self, program: ProgramState) -> Transition:
        text = self._instruction(program)

        match = ASSIGN_LITERAL.match(text)
        if match:
            program.set_var(match.group(1), unquote(match.group(2)))
            program.advance()
            return program, State.EXECUTE

        match = ASSIGN_POP.match(text)
        if match:
            value = program.pop()
            if value is None:
                raise SegRuntimeError("Stack is empty")
            program.set_var(match.group(1), value)
            program.advance()
            return program, State.EXECUTE

        # The arithmetic itself happens in MATH, on this same instruction.
        if ASSIGN_MATH.match(text):
            return program, State.MATH

        match = ASSIGN_INPUT.match(text)
        if match:
            try:
                value = self.input_provider()
            except EOFError:
                raise SegRuntimeError("Input stream closed")
            self.io_log.append({"event": "INPUT", "text": value})
            program.set_var(match.group(1), value)
            program.advance()
            return program, State.EXECUTE

        match = ASSIGN_COPY.match(text)
        if match:
            dst, src = match.groups()
            self._require_var(program, src)
            program.copy_var(dst, src)
            program.advance()
            return program, State.EXECUTE

        raise SegRuntimeError(f"Invalid assign instruction: `{text}`")

    def _math(self, program: ProgramState) -> Transition:
        text = self._instruction(program)
        match = ASSIGN_MATH.match(text)
        if match is None:
            raise SegRuntimeError(f"Invalid arithmetic instruction: `{text}`")
        dst, lhs_name, op, rhs_name = match.groups()
        with unlimited_int_digits():
            lhs = self._integer_operand(program, lhs_name)
            rhs = self._integer_operand(program, rhs_name)
            if op == "/":
                if rhs == 0:
                    raise SegRuntimeError("Division by zero")
                quotient, remainder = truncating_divmod(lhs, rhs)
                program.set_var(dst, str(quotient))
                program.push(str(remainder))
            else:
                program.set_var(dst, str(ARITHMETIC[op](lhs, rhs)))
        program.advance()
        return program, State.EXECUTE

    def _goto(self, program: ProgramState) -> Transition:
        text = self._instruction(program)
        match = GOTO_STATEMENT.match(text)
        if match is None:
            raise SegRuntimeError(f"Invalid goto instruction: `{text}`")
        with unlimited_int_digits():
            target = int(match.group(1))
        self._check_target(program, target)
        program.jump_to(target)
        return program, State.EXECUTE

    def _if(self, program: ProgramState) -> Transition:
        text = self._instruction(program)
        match = IF_STATEMENT.match(text)
        if match is None:
            raise SegRuntimeError(f"Invalid if instruction: `{text}`")
        lhs_name, comparison, rhs_name, target_text = match.groups()
        lhs = self._require_var(program, lhs_name)
        rhs = self._require_var(program, rhs_name)
        if COMPARISONS[comparison](lhs, rhs):
            with unlimited_int_digits():
                target = int(target_text)
            self._check_target(program, target)
            program.jump_to(target)
        else:
            program.advance()
        return program, State.EXECUTE

    def _output(self, program: ProgramState) -> Transition:
        text = self._instruction(program)
        match = OUTPUT_STATEMENT.match(text)
        if match is None:
            raise SegRuntimeError(f"Invalid output instruction: `{text}`")
        value = self._require_var(program, match.group(1))
        self.output_sink(value)
        self.io_log.append({"event": "OUTPUT", "text": value})
        program.advance()
        return program, State.EXECUTE

    def _end(self, program: ProgramState) -> Transition:
        return program, None

    # ---- helpers ----

    def _instruction(self, program: ProgramState) -> str:
        text = program.current_instruction()
        if text is None:
            raise SegRuntimeError("Instruction pointer is past the end of the program")
        return text.strip()

    def _require_var(self, program: ProgramState, name: str) -> str:
        value = program.get_var(name)
        if value is None:
            raise SegRuntimeError(f"Variable ${name} does not exist")
        return value

    def _integer_operand(self, program: ProgramState, name: str) -> int:
        value = self._require_var(program, name)
        if not INTEGER.match(value.strip()):
            raise SegRuntimeError(f"Variable ${name} is not numeric: '{value}'")
        return int(value)

    def _check_target(self, program: ProgramState, target: int) -> None:
        if target >= program.code_length():
            raise SegRuntimeError("Goto statement points to region out of bounds")

    def _log_step(self, *, rule: str, program: ProgramState) -> None:
        self.logger.record(
            rule=rule,
            ip=program.ip,
            instruction=program.current_instruction(),
            env_snapshot=program.snapshot() if self.verbose else None,
        )


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter, depth: int = 3) -> None:
        self.interpreter = interpreter
        self.depth = depth

    def recent_entries(self) -> List[StateEntry]:
        steps = [e for e in self.interpreter.logger.entries if e.rule != "SEED"]
        return steps[-self.depth:] if self.depth > 0 else []

    def format_text(self, error: SegRuntimeError, verbose: bool) -> str:
        lines = ["Traceback (most recent step last):"]
        for entry in self.recent_entries():
            if entry.ip is not None:
                lines.append(f"  File \"{self.interpreter.filename}\", instruction {entry.ip}, in {entry.rule}")
            else:
                lines.append(f"  <unknown location> in {entry.rule}")
            if entry.instruction:
                lines.append(f"    {entry.instruction}")
            lines.append(f"    State log index: {entry.step_index}  State id: {entry.state_id}")
            if verbose and entry.env_snapshot is not None:
                snapshot = ", ".join(f"{k}={v}" for k, v in entry.env_snapshot["vars"].items())
                lines.append(f"    Env snapshot: {snapshot}  stack={entry.env_snapshot['stack']}")
        state = error.state or "runtime"
        lines.append(f"{error.__class__.__name__}: {error.message} (state: {state})")
        return "\n".join(lines)

    def to_json(self, error: SegRuntimeError) -> str:
        steps: List[Dict[str, Any]] = []
        for entry in self.recent_entries():
            record: Dict[str, Any] = {
                "step_index": entry.step_index,
                "state_id": entry.state_id,
                "rule": entry.rule,
                "ip": entry.ip,
                "instruction": entry.instruction,
            }
            if entry.env_snapshot is not None:
                record["env_snapshot"] = entry.env_snapshot
            steps.append(record)
        data = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "state": error.state,
                "ip": error.ip,
                "instruction": error.instruction,
                "failing_step_index": error.step_index,
            },
            "file": self.interpreter.filename,
            "traceback": steps,
        }
        return json.dumps(data, indent=2)
