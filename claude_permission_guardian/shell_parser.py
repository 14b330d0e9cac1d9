"""
Shell statement parser.

bashlex builds the syntax tree; the tree is then converted into a small closed
set of node types and walked once, left to right, emitting every simple
command together with the operator that connects it to the next command.
Expansions are never resolved: parameter expansions and command
substitutions are replaced by opaque placeholders in the argument words.
"""

import re
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Tuple, Union

import bashlex

from .models import ParsedCommand, ShellStatement


PARAMETER_PLACEHOLDER = '${{{}}}'
SUBSTITUTION_PLACEHOLDER = '$(...)'

# Text that turns a parameter expansion into hidden command execution
_EMBEDDED_SUBSTITUTION = re.compile(r'\$\(|`|<\(|>\(')

# `time` or `time -p` where a command may start
_TIME_KEYWORD = re.compile(r"(?:^|(?<=[;&|({!\n]))\s*(time(?:[ \t]+-p)?)(?=\s)")


class ShellSyntaxError(ValueError):
    """The text is not a shell statement we can classify"""


# ============================================================================
# Syntax Tree
# ============================================================================

@dataclass(frozen=True)
class Literal:
    """Plain text inside a word, quotes already removed"""
    text: str


@dataclass(frozen=True)
class Expansion:
    """Parameter expansion such as $HOME or ${name:-x}"""
    name: str


@dataclass(frozen=True)
class Substitution:
    """Command or process substitution; body holds the nested statement"""
    body: Tuple['Node', ...]
    placeholder: str = SUBSTITUTION_PLACEHOLDER


WordPart = Union[Literal, Expansion, Substitution]


@dataclass(frozen=True)
class Word:
    parts: Tuple[WordPart, ...]

    @property
    def text(self) -> str:
        pieces = []
        for part in self.parts:
            if isinstance(part, Literal):
                pieces.append(part.text)
            elif isinstance(part, Expansion):
                pieces.append(PARAMETER_PLACEHOLDER.format(part.name))
            else:
                pieces.append(part.placeholder)
        return ''.join(pieces)


@dataclass(frozen=True)
class Call:
    """Simple command. `words` are the command name and arguments; `prefix`
    and `suffix` hold assignments and redirect targets found before and
    after the command name."""
    words: Tuple[Word, ...]
    prefix: Tuple[Word, ...] = ()
    suffix: Tuple[Word, ...] = ()
    span: Tuple[int, int] = (0, 0)


@dataclass(frozen=True)
class Pipeline:
    commands: Tuple['Node', ...]
    pipes: Tuple[str, ...]


@dataclass(frozen=True)
class CommandList:
    """Items joined by list operators; operators[i] follows items[i]"""
    items: Tuple['Node', ...]
    operators: Tuple[str, ...]


@dataclass(frozen=True)
class Compound:
    """Subshell, brace group, loop, conditional or function definition"""
    body: CommandList
    words: Tuple[Word, ...] = ()


Node = Union[Call, Pipeline, CommandList, Compound]


# ============================================================================
# bashlex Conversion
# ============================================================================

_COMPOUND_KINDS = ('compound', 'if', 'for', 'while', 'until', 'function')


class _TreeBuilder:
    """Converts bashlex nodes into the closed node set above"""

    def __init__(self, source: str, keywords: Tuple[Tuple[int, int, Tuple[str, ...]], ...] = ()):
        self.source = source
        # (start, end, words) of each masked `time` keyword
        self.keywords = keywords

    def statement(self, nodes: List[Any]) -> CommandList:
        items = tuple(self.node(n) for n in nodes)
        return CommandList(items, self._sequence_operators(len(items)))

    def node(self, node: Any) -> Node:
        kind = node.kind
        if kind == 'command':
            return self._call(node)
        if kind == 'pipeline':
            return self._pipeline(node)
        if kind == 'list':
            return self._list(node)
        if kind in _COMPOUND_KINDS:
            return self._compound(node)
        raise ShellSyntaxError(f"Unsupported shell construct: {kind}")

    def _call(self, node: Any) -> Call:
        words, prefix, suffix = [], [], []
        for part in node.parts:
            extras = suffix if words else prefix
            if part.kind == 'word':
                words.append(self._word(part))
            elif part.kind == 'assignment':
                extras.append(self._word(part))
            elif part.kind == 'redirect':
                extras.extend(self._redirect_target(part))
            else:
                raise ShellSyntaxError(f"Unsupported command part: {part.kind}")
        start, end = node.pos
        keyword = self._keyword_before(start)
        if keyword is not None:
            start, keyword_words = keyword
            words[:0] = [Word((Literal(w),)) for w in keyword_words]
        return Call(tuple(words), tuple(prefix), tuple(suffix), (start, end))

    def _keyword_before(self, position: int):
        for start, end, words in self.keywords:
            if end <= position and not self.source[end:position].strip():
                return start, words
        return None

    def _pipeline(self, node: Any) -> Pipeline:
        commands, pipes = [], []
        for part in node.parts:
            if part.kind == 'pipe':
                pipes.append(part.pipe)
            elif part.kind == 'reservedword':
                # leading '!' negation
                continue
            else:
                commands.append(self.node(part))
        return Pipeline(tuple(commands), tuple(pipes))

    def _list(self, node: Any) -> CommandList:
        items: List[Node] = []
        operators: List[str] = []
        for part in node.parts:
            if part.kind == 'operator':
                if items:
                    operators[-1] = part.op
            else:
                items.append(self.node(part))
                operators.append('')
        return CommandList(tuple(items), tuple(operators))

    def _compound(self, node: Any) -> Compound:
        children = getattr(node, 'list', None) or getattr(node, 'parts', [])
        body: List[Node] = []
        words: List[Word] = []
        for child in children:
            if child.kind in ('reservedword', 'operator', 'pipe'):
                continue
            if child.kind == 'word':
                # loop items, function names
                words.append(self._word(child))
            else:
                body.append(self.node(child))
        for redirect in getattr(node, 'redirects', None) or []:
            words.extend(self._redirect_target(redirect))
        items = tuple(body)
        return Compound(CommandList(items, self._sequence_operators(len(items))), tuple(words))

    def _redirect_target(self, redirect: Any) -> List[Word]:
        # fd duplication (2>&1) carries an int, not a word
        output = getattr(redirect, 'output', None)
        if output is None or isinstance(output, int):
            return []
        return [self._word(output)]

    def _word(self, node: Any) -> Word:
        text = getattr(node, 'word', '')
        parts: List[WordPart] = []
        cursor = 0
        for child in getattr(node, 'parts', None) or []:
            if child.kind == 'tilde':
                continue
            expansion = self._expansion(child)
            start, end = child.pos
            index = text.find(self.source[start:end], cursor)
            if index >= 0:
                if index > cursor:
                    parts.append(Literal(text[cursor:index]))
                cursor = index + (end - start)
            elif cursor < len(text):
                parts.append(Literal(text[cursor:]))
                cursor = len(text)
            parts.append(expansion)
        if cursor < len(text) or not parts:
            parts.append(Literal(text[cursor:]))
        return Word(tuple(parts))

    def _expansion(self, node: Any) -> WordPart:
        kind = node.kind
        if kind == 'parameter':
            value = getattr(node, 'value', '')
            if _EMBEDDED_SUBSTITUTION.search(value):
                # bashlex keeps ${x:-$(cmd)} as flat text, so the hidden
                # command cannot be emitted
                raise ShellSyntaxError(f"Command substitution inside parameter expansion: ${{{value}}}")
            if not value:
                # $'...' and $"..." quoting, not an expansion
                return Literal('')
            return Expansion(value)
        if kind == 'commandsubstitution':
            return Substitution((self.node(node.command),))
        if kind == 'processsubstitution':
            start = node.pos[0]
            return Substitution((self.node(node.command),), self.source[start:start + 2] + '...)')
        raise ShellSyntaxError(f"Unsupported word part: {kind}")

    @staticmethod
    def _sequence_operators(count: int) -> Tuple[str, ...]:
        return tuple(';' if i < count - 1 else '' for i in range(count))


# ============================================================================
# Command Emission
# ============================================================================

@dataclass
class _Emitter:
    """Single left-to-right pass that collects commands and hazard flags"""
    source: str
    commands: List[ParsedCommand] = field(default_factory=list)
    has_pipe: bool = False
    has_background: bool = False
    has_subshell: bool = False

    def emit(self, node: Node) -> None:
        try:
            handler = _HANDLERS[type(node)]
        except KeyError:
            raise TypeError(f"Unknown syntax node: {type(node).__name__}") from None
        handler(self, node)

    def _emit_call(self, node: Call) -> None:
        for word in node.prefix:
            self._emit_word(word)
        if node.words:
            args = tuple(word.text for word in node.words)
            start, end = node.span
            raw = self.source[start:end].strip() if 0 <= start < end <= len(self.source) else ''
            self.commands.append(ParsedCommand(name=args[0], args=args, raw=raw or ' '.join(args)))
        for word in node.words + node.suffix:
            self._emit_word(word)

    def _emit_pipeline(self, node: Pipeline) -> None:
        if node.pipes:
            self.has_pipe = True
        operators = node.pipes + ('',)
        self._emit_sequence(node.commands, operators)

    def _emit_list(self, node: CommandList) -> None:
        operators = []
        last = len(node.items) - 1
        for index, operator in enumerate(node.operators):
            if operator == '&':
                self.has_background = True
                operator = ';' if index < last else ''
            elif operator == '\n':
                operator = ';' if index < last else ''
            elif operator == ';' and index == last:
                operator = ''
            operators.append(operator)
        self._emit_sequence(node.items, tuple(operators))

    def _emit_compound(self, node: Compound) -> None:
        for word in node.words:
            self._emit_word(word)
        self._emit_list(node.body)

    def _emit_sequence(self, items: Tuple[Node, ...], operators: Tuple[str, ...]) -> None:
        for item, operator in zip(items, operators):
            before = len(self.commands)
            self.emit(item)
            if operator and len(self.commands) > before:
                self.commands[-1] = replace(self.commands[-1], operator=operator)

    def _emit_word(self, word: Word) -> None:
        for part in word.parts:
            if isinstance(part, Substitution):
                self.has_subshell = True
                self._emit_sequence(part.body, ('',) * len(part.body))


_HANDLERS: Dict[type, Callable[[_Emitter, Any], None]] = {
    Call: _Emitter._emit_call,
    Pipeline: _Emitter._emit_pipeline,
    CommandList: _Emitter._emit_list,
    Compound: _Emitter._emit_compound,
}


# ============================================================================
# Entry Point
# ============================================================================

def _is_blank(text: str) -> bool:
    """True for empty input or input made only of comment lines"""
    return all(not line.strip() or line.lstrip().startswith('#') for line in text.splitlines())


def _mask_time_keywords(command: str):
    """Blank out `time [-p]` keywords, keeping every other offset in place"""
    keywords = []
    masked = command
    for match in _TIME_KEYWORD.finditer(command):
        start, end = match.span(1)
        keywords.append((start, end, tuple(match.group(1).split())))
        masked = masked[:start] + ' ' * (end - start) + masked[end:]
    return masked, tuple(keywords)


def _parse(text: str) -> List[Any]:
    try:
        return bashlex.parse(text)
    except Exception as e:
        raise ShellSyntaxError(f"Command syntax error: {e}") from e


def build_tree(command: str) -> CommandList:
    """Parse command text into the node tree used for emission"""
    try:
        return _TreeBuilder(command).statement(_parse(command))
    except ShellSyntaxError:
        # bashlex has no `time` keyword; retry with it masked
        masked, keywords = _mask_time_keywords(command)
        if not keywords:
            raise
    return _TreeBuilder(command, keywords).statement(_parse(masked))


def parse_shell_command(command: str) -> ShellStatement:
    """Parse a command line into its commands, operators and hazard flags"""
    if _is_blank(command):
        return ShellStatement(raw=command)

    tree = build_tree(command)
    emitter = _Emitter(command)
    emitter.emit(tree)

    return ShellStatement(
        raw=command,
        commands=tuple(emitter.commands),
        has_pipe=emitter.has_pipe,
        has_background=emitter.has_background,
        has_subshell=emitter.has_subshell,
    )
