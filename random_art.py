#!/usr/bin/env python3
"""random_art.py

A small typed expression language for procedural textures, plus a
stochastic grammar that grows random expression trees ("random art").

Key features:
- Immutable expression trees with run-time type checking on evaluation.
- Weighted, JSON-configurable grammars with a depth budget and bounded retry.
- Frozen-at-generation randomness (rand) vs per-pixel randomness (random).
- Raster output through Pillow (format chosen from the file extension).

Run:
  python random_art.py render out.png --seed 7
  python random_art.py render out.png --grammar example/random_art.json
  python random_art.py demo out.bmp
  python random_art.py --help
"""

from __future__ import annotations

import argparse
import json
import logging
import math
import os
import random
import sys
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any, Union, cast

from PIL import Image

logger = logging.getLogger(__name__)

Coordinate = tuple[float, float]
Color = tuple[float, float, float]
RGB = tuple[int, int, int]

DEFAULT_MAX_ATTEMPTS = 10


# -------------------------
# Errors / Validation
# -------------------------


class ConfigError(ValueError):
    pass


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigError(msg)


def _as_float(x: Any, path: str) -> float:
    _require(
        isinstance(x, (int, float)) and not isinstance(x, bool),
        f"{path} must be a number",
    )
    return float(x)


def _as_int(x: Any, path: str) -> int:
    _require(
        isinstance(x, int) and not isinstance(x, bool), f"{path} must be an integer"
    )
    return int(x)


def _as_str(x: Any, path: str) -> str:
    _require(isinstance(x, str), f"{path} must be a string")
    return cast(str, x)


def _as_list(x: Any, path: str) -> list[Any]:
    _require(isinstance(x, list), f"{path} must be an array")
    return cast(list[Any], x)


def _as_dict(x: Any, path: str) -> dict[str, Any]:
    _require(isinstance(x, dict), f"{path} must be an object")
    return cast(dict[str, Any], x)


# -------------------------
# Node model
# -------------------------


@dataclass(frozen=True)
class X:
    pass


@dataclass(frozen=True)
class Y:
    pass


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Boolean:
    value: bool


@dataclass(frozen=True)
class Random:
    """Uniform sample in [-1, 1), drawn again on every evaluation."""


@dataclass(frozen=True)
class Rand:
    """Uniform sample in [-1, 1), frozen into a Number during generation."""


@dataclass(frozen=True)
class Rule:
    """Nonterminal: expands to one production of rule-set ``index``."""

    index: int


@dataclass(frozen=True)
class Add:
    lhs: Node
    rhs: Node


@dataclass(frozen=True)
class Mul:
    lhs: Node
    rhs: Node


@dataclass(frozen=True)
class Fmodf:
    lhs: Node
    rhs: Node


@dataclass(frozen=True)
class GreaterThan:
    lhs: Node
    rhs: Node


@dataclass(frozen=True)
class IfThenElse:
    cond: Node
    then: Node
    otherwise: Node


@dataclass(frozen=True)
class Triple:
    first: Node
    second: Node
    third: Node


Node = Union[
    X,
    Y,
    Number,
    Boolean,
    Random,
    Rand,
    Rule,
    Add,
    Mul,
    Fmodf,
    GreaterThan,
    IfThenElse,
    Triple,
]

# JSON / display names for every variant.
_TERMINAL_NAMES: dict[type, str] = {
    X: "x",
    Y: "y",
    Random: "random",
    Rand: "rand",
}
_OPERATOR_NAMES: dict[type, str] = {
    Add: "add",
    Mul: "mul",
    Fmodf: "fmodf",
    GreaterThan: "gt",
    IfThenElse: "if",
    Triple: "triple",
}


def children(node: Node) -> tuple[Node, ...]:
    if isinstance(node, (Add, Mul, Fmodf, GreaterThan)):
        return (node.lhs, node.rhs)
    if isinstance(node, IfThenElse):
        return (node.cond, node.then, node.otherwise)
    if isinstance(node, Triple):
        return (node.first, node.second, node.third)
    return ()


def iter_nodes(node: Node) -> Iterator[Node]:
    """Yield every node of the tree in pre-order."""
    stack: list[Node] = [node]
    while stack:
        n = stack.pop()
        yield n
        stack.extend(reversed(children(n)))


def format_node(node: Node) -> str:
    if isinstance(node, Number):
        return repr(float(node.value))
    if isinstance(node, Boolean):
        return "true" if node.value else "false"
    if isinstance(node, Rule):
        return f"rule({node.index})"
    name = _TERMINAL_NAMES.get(type(node))
    if name is not None:
        return name
    args = ", ".join(format_node(c) for c in children(node))
    return f"{_OPERATOR_NAMES[type(node)]}({args})"


# -------------------------
# Evaluation
# -------------------------


class EvalError(Exception):
    pass


class _BinaryTypeError(EvalError):
    op_name = ""
    symbol = ""

    def __init__(self, lhs: Node, rhs: Node) -> None:
        self.lhs = lhs
        self.rhs = rhs
        super().__init__(
            f"TypeError:Unexpected operand types for {self.op_name}: "
            f"`{format_node(lhs)}` {self.symbol} `{format_node(rhs)}`"
        )


class AddError(_BinaryTypeError):
    op_name = "Add"
    symbol = "+"


class MulError(_BinaryTypeError):
    op_name = "Mul"
    symbol = "*"


class FmodfError(_BinaryTypeError):
    op_name = "Fmodf"
    symbol = "%"


class GreaterThanError(_BinaryTypeError):
    op_name = "GreaterThan"
    symbol = ">"


class IfThenElseError(EvalError):
    def __init__(self, cond: Node, then: Node, otherwise: Node) -> None:
        self.cond = cond
        self.then = then
        self.otherwise = otherwise
        super().__init__(
            "TypeError:Unexpected operand types for IfThenElse: "
            f"`{format_node(cond)}` ? `{format_node(then)}` : "
            f"`{format_node(otherwise)}`"
        )


class RuleError(EvalError):
    def __init__(self, index: int) -> None:
        self.index = index
        super().__init__(f"Unexpanded rule({index}) reached evaluation")


class RandError(EvalError):
    def __init__(self) -> None:
        super().__init__("Unresolved rand reached evaluation")


def _fmod(a: float, b: float) -> float:
    # math.fmod raises on a zero divisor; a floating remainder yields NaN.
    if b == 0 or math.isinf(a):
        return math.nan
    return math.fmod(a, b)


_BINARY_RULES: dict[
    type, tuple[type[_BinaryTypeError], Callable[[float, float], Node]]
] = {
    Add: (AddError, lambda a, b: Number(a + b)),
    Mul: (MulError, lambda a, b: Number(a * b)),
    Fmodf: (FmodfError, lambda a, b: Number(_fmod(a, b))),
    GreaterThan: (GreaterThanError, lambda a, b: Boolean(a > b)),
}


def _sample(rng: random.Random) -> float:
    return rng.random() * 2.0 - 1.0


def evaluate(node: Node, uv: Coordinate, rng: random.Random | None = None) -> Node:
    """Reduce ``node`` at coordinate ``uv`` to a fully evaluated node.

    Evaluation is strict: every operand (both branches of a conditional
    included) is evaluated before the operator checks its operand types.
    Raises an EvalError subclass on the first type mismatch or placeholder.
    """
    if rng is None:
        rng = random.Random()
    return _eval(node, uv, rng)


def _eval(node: Node, uv: Coordinate, rng: random.Random) -> Node:
    if isinstance(node, X):
        return Number(uv[0])
    if isinstance(node, Y):
        return Number(uv[1])
    if isinstance(node, (Number, Boolean)):
        return node
    if isinstance(node, Random):
        return Number(_sample(rng))
    if isinstance(node, Rule):
        raise RuleError(node.index)
    if isinstance(node, Rand):
        raise RandError()

    if isinstance(node, (Add, Mul, Fmodf, GreaterThan)):
        lhs = _eval(node.lhs, uv, rng)
        rhs = _eval(node.rhs, uv, rng)
        error, reduce = _BINARY_RULES[type(node)]
        if isinstance(lhs, Number) and isinstance(rhs, Number):
            return reduce(lhs.value, rhs.value)
        raise error(lhs, rhs)

    if isinstance(node, IfThenElse):
        cond = _eval(node.cond, uv, rng)
        then = _eval(node.then, uv, rng)
        otherwise = _eval(node.otherwise, uv, rng)
        if not isinstance(cond, Boolean):
            raise IfThenElseError(cond, then, otherwise)
        # Branch shapes are not compared.
        return then if cond.value else otherwise

    if isinstance(node, Triple):
        return Triple(
            _eval(node.first, uv, rng),
            _eval(node.second, uv, rng),
            _eval(node.third, uv, rng),
        )

    raise TypeError(f"Not a node: {node!r}")


def find_placeholder(node: Node) -> Rule | Rand | None:
    """Return the first Rule or Rand left in ``node``, if any."""
    for n in iter_nodes(node):
        if isinstance(n, (Rule, Rand)):
            return n
    return None


def ensure_resolved(node: Node) -> None:
    """Reject a template that still holds generation-time placeholders."""
    found = find_placeholder(node)
    if isinstance(found, Rule):
        raise RuleError(found.index)
    if isinstance(found, Rand):
        raise RandError()


# -------------------------
# Grammar model
# -------------------------


@dataclass(frozen=True)
class Production:
    template: Node
    weight: float


@dataclass(frozen=True)
class Grammar:
    rules: tuple[tuple[Production, ...], ...]
    start: int = 0
    name: str = "Grammar"

    def __post_init__(self) -> None:
        _require(len(self.rules) > 0, "grammar must contain at least one rule-set")
        for i, rs in enumerate(self.rules):
            _require(len(rs) > 0, f"rule-set {i} must contain at least one production")
        _require(
            0 <= self.start < len(self.rules),
            f"start must be between 0 and {len(self.rules) - 1}",
        )


def node_from_json(obj: Any, path: str = "template") -> Node:
    if isinstance(obj, bool):
        return Boolean(obj)
    if isinstance(obj, (int, float)):
        return Number(float(obj))
    if isinstance(obj, str):
        for cls, name in _TERMINAL_NAMES.items():
            if obj == name:
                return cast(Node, cls())
        raise ConfigError(f"{path}: unknown terminal {obj!r}")

    items = _as_list(obj, path)
    _require(len(items) > 0, f"{path} must not be an empty array")
    head = _as_str(items[0], f"{path}[0]")
    args = items[1:]

    if head == "rule":
        _require(len(args) == 1, f"{path}: 'rule' takes 1 argument, got {len(args)}")
        index = _as_int(args[0], f"{path}[1]")
        _require(index >= 0, f"{path}: rule index must be >= 0")
        return Rule(index)

    for cls, name in _OPERATOR_NAMES.items():
        if head == name:
            arity = 2 if cls not in (IfThenElse, Triple) else 3
            _require(
                len(args) == arity,
                f"{path}: '{head}' takes {arity} arguments, got {len(args)}",
            )
            operands = [
                node_from_json(a, f"{path}[{i + 1}]") for i, a in enumerate(args)
            ]
            return cast(Node, cls(*operands))

    raise ConfigError(f"{path}: unknown operator {head!r}")


def node_to_json(node: Node) -> Any:
    if isinstance(node, Number):
        return node.value
    if isinstance(node, Boolean):
        return node.value
    if isinstance(node, Rule):
        return ["rule", node.index]
    name = _TERMINAL_NAMES.get(type(node))
    if name is not None:
        return name
    return [_OPERATOR_NAMES[type(node)], *(node_to_json(c) for c in children(node))]


def parse_grammar(obj: dict[str, Any]) -> Grammar:
    obj = _as_dict(obj, "root")

    name = _as_str(obj.get("name", "Grammar"), "name")
    rules_obj = _as_list(obj.get("rules", []), "rules")
    _require(len(rules_obj) > 0, "rules must contain at least one rule-set")

    rules: list[tuple[Production, ...]] = []
    for i, rs in enumerate(rules_obj):
        rs = _as_list(rs, f"rules[{i}]")
        _require(len(rs) > 0, f"rules[{i}] must contain at least one production")
        prods: list[Production] = []
        for j, p in enumerate(rs):
            ppath = f"rules[{i}][{j}]"
            p = _as_dict(p, ppath)
            _require("template" in p, f"{ppath}.template is required")
            weight = _as_float(p.get("weight", 1.0), f"{ppath}.weight")
            _require(weight >= 0, f"{ppath}.weight must be >= 0")
            template = node_from_json(p["template"], f"{ppath}.template")
            prods.append(Production(template=template, weight=weight))
        _require(
            sum(p.weight for p in prods) > 0,
            f"rules[{i}] weights must have a positive total",
        )
        rules.append(tuple(prods))

    for i, rs in enumerate(rules):
        for j, p in enumerate(rs):
            for n in iter_nodes(p.template):
                if isinstance(n, Rule):
                    _require(
                        n.index < len(rules),
                        f"rules[{i}][{j}].template refers to missing rule-set "
                        f"{n.index}",
                    )

    start = _as_int(obj.get("start", 0), "start")
    _require(0 <= start < len(rules), f"start must be between 0 and {len(rules) - 1}")

    return Grammar(rules=tuple(rules), start=start, name=name)


def grammar_to_json(grammar: Grammar) -> dict[str, Any]:
    return {
        "name": grammar.name,
        "start": grammar.start,
        "rules": [
            [{"template": node_to_json(p.template), "weight": p.weight} for p in rs]
            for rs in grammar.rules
        ],
    }


def default_grammar() -> Grammar:
    """The built-in random-art grammar.

    0 (entry)  -> triple(C, C, C)
    1 (A atom) -> x | y | rand | random
    2 (C expr) -> A | add(C, C) | mul(C, C) | fmodf(C, C) | if(gt(C, C), C, C)
    """
    a, c = Rule(1), Rule(2)
    return Grammar(
        name="Random Art",
        start=0,
        rules=(
            (Production(Triple(c, c, c), 1.0),),
            (
                Production(X(), 0.3),
                Production(Y(), 0.3),
                Production(Rand(), 0.3),
                Production(Random(), 0.1),
            ),
            (
                Production(a, 0.6),
                Production(Add(c, c), 0.12),
                Production(Mul(c, c), 0.12),
                Production(Fmodf(c, c), 0.1),
                Production(IfThenElse(GreaterThan(c, c), c, c), 0.06),
            ),
        ),
    )


# -------------------------
# Random tree generation
# -------------------------


def _choose(productions: tuple[Production, ...], threshold: float) -> Production:
    total = 0.0
    for p in productions:
        total += p.weight
        if total >= threshold:
            return p
    # Weights summing slightly below 1 leave a sliver for the last production.
    return productions[-1]


def expand_node(
    grammar: Grammar,
    template: Node,
    depth: int,
    rng: random.Random,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Node | None:
    """Replace every placeholder in ``template``; None if any rule fails."""
    if isinstance(template, Rule):
        return expand_rule(grammar, template.index, depth - 1, rng, max_attempts)
    if isinstance(template, Rand):
        return Number(_sample(rng))

    kids = children(template)
    if not kids:
        return template

    expanded: list[Node] = []
    for kid in kids:
        e = expand_node(grammar, kid, depth, rng, max_attempts)
        if e is None:
            return None
        expanded.append(e)
    return cast(Node, type(template)(*expanded))


def expand_rule(
    grammar: Grammar,
    index: int,
    depth: int,
    rng: random.Random,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Node | None:
    """Expand rule-set ``index`` within ``depth`` nested rule expansions.

    Each attempt draws a fresh threshold and expands the production it
    selects; a failed production is not followed by its siblings, the next
    attempt resamples instead. Returns None once depth is exhausted or all
    attempts have failed.
    """
    if depth <= 0:
        return None

    productions = grammar.rules[index]
    for attempt in range(max_attempts):
        p = _choose(productions, rng.random())
        node = expand_node(grammar, p.template, depth, rng, max_attempts)
        if node is not None:
            return node
        logger.debug(
            "rule %d: attempt %d/%d failed at depth %d",
            index,
            attempt + 1,
            max_attempts,
            depth,
        )
    return None


def generate(
    grammar: Grammar,
    depth: int,
    rng: random.Random | None = None,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Node | None:
    """Generate a fully resolved tree from the grammar's start symbol."""
    if rng is None:
        rng = random.Random()
    return expand_rule(grammar, grammar.start, depth, rng, max_attempts)


# -------------------------
# Rendering
# -------------------------


class RenderError(EvalError):
    def __init__(self, result: Node) -> None:
        self.result = result
        super().__init__(
            f"Wrong result type (expected triple of numbers): {format_node(result)}"
        )


def eval_color(node: Node, uv: Coordinate, rng: random.Random | None = None) -> Color:
    result = evaluate(node, uv, rng)
    if (
        isinstance(result, Triple)
        and isinstance(result.first, Number)
        and isinstance(result.second, Number)
        and isinstance(result.third, Number)
    ):
        return (result.first.value, result.second.value, result.third.value)
    raise RenderError(result)


def to_channel(v: float) -> int:
    """Map v in [-1, 1] to 0..255, rounding halves up (0.0 -> 128)."""
    if math.isnan(v):
        return 0
    v = min(max(v, -1.0), 1.0)
    return min(max(math.floor((v + 1.0) * 127.5 + 0.5), 0), 255)


def color_to_rgb(color: Color) -> RGB:
    return (to_channel(color[0]), to_channel(color[1]), to_channel(color[2]))


def pixel_coordinate(x: int, y: int, width: int, height: int) -> Coordinate:
    return (2.0 * x / width - 1.0, 2.0 * y / height - 1.0)


def render_image(
    node: Node,
    width: int,
    height: int,
    rng: random.Random | None = None,
    progress: Callable[[int], None] | None = None,
) -> Image.Image:
    """Evaluate ``node`` at every pixel and return an RGB image.

    ``progress`` is called with the completed percentage (0..100) whenever
    it advances. Any evaluation error aborts the whole render.
    """
    _require(width > 0 and height > 0, "width and height must be > 0")
    ensure_resolved(node)
    if rng is None:
        rng = random.Random()

    pixels: list[RGB] = []
    percent = -1
    for y in range(height):
        for x in range(width):
            uv = pixel_coordinate(x, y, width, height)
            pixels.append(color_to_rgb(eval_color(node, uv, rng)))
        done = (y + 1) * 100 // height
        if progress is not None and done != percent:
            percent = done
            progress(percent)

    img = Image.new("RGB", (width, height))
    img.putdata(pixels)
    return img


def _ensure_parent_dir(path: str) -> None:
    os.makedirs(os.path.dirname(os.path.abspath(path)) or ".", exist_ok=True)


def write_image(img: Image.Image, path: str) -> None:
    ext = os.path.splitext(path)[1].lower()
    fmt = Image.registered_extensions().get(ext)
    # Some registered formats (psd, fits, ...) can be read but not written.
    _require(
        fmt is not None and fmt in Image.SAVE,
        f"Unsupported image extension {ext or '(none)'!r} for {path}",
    )
    _ensure_parent_dir(path)
    img.save(path)


def demo_tree() -> Node:
    """Quadrant pattern: (x, y, 1) where x*y > 0, else gray x % y."""
    r = Fmodf(X(), Y())
    return IfThenElse(
        GreaterThan(Mul(X(), Y()), Number(0.0)),
        Triple(X(), Y(), Number(1.0)),
        Triple(r, r, r),
    )


# -------------------------
# Config IO
# -------------------------


def load_json(path: str) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        try:
            return cast(dict[str, Any], json.load(f))
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}") from e


def dump_json(obj: dict[str, Any], path: str) -> None:
    _ensure_parent_dir(path)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, ensure_ascii=False)
        f.write("\n")


def load_grammar(path: str) -> Grammar:
    return parse_grammar(load_json(path))


# -------------------------
# CLI / Help
# -------------------------

HELP_EPILOG = r"""
GRAMMAR JSON SYNTAX (render --grammar, validate)

A grammar is a list of rule-sets. Each rule-set is a list of weighted
productions; the position of a rule-set in the list is its id, which
templates refer to with ["rule", <id>].

Top-level keys

  name: string (optional)
      A human-readable name, shown by `validate`.

  start: integer (default 0)
      Id of the rule-set generation starts from. Its expansion must
      evaluate to a triple of numbers.

  rules: array of rule-sets (required, non-empty)

    rule-set: array of productions (non-empty)

      production: { "template": <node>, "weight": <number >= 0> }

          Weights in a rule-set should sum to 1. Each attempt draws a
          threshold in [0, 1) and picks the first production whose
          running weight total exceeds it.

Node syntax

  "x", "y"              pixel coordinate, each in [-1, 1]
  <number>              literal number
  true, false           literal boolean
  "random"              fresh uniform sample in [-1, 1) on every pixel
  "rand"                uniform sample in [-1, 1), fixed when the tree is built
  ["rule", id]          expand rule-set `id` (costs one unit of depth)
  ["add", a, b]         a + b
  ["mul", a, b]         a * b
  ["fmodf", a, b]       floating remainder, sign follows a
  ["gt", a, b]          a > b, a boolean
  ["if", c, t, e]       t if c else e; both branches are always evaluated
  ["triple", r, g, b]   a color; each component in [-1, 1]

Generation

  Every ["rule", id] spends one unit of --depth. A rule-set that runs out
  of depth fails; a failed production is retried with a fresh draw up to
  --attempts times before its rule-set fails in turn. If the start rule
  fails, no image is written.

Example

    {
      "name": "Stripes",
      "rules": [
        [ {"template": ["triple", ["rule", 1], ["rule", 1], "rand"], "weight": 1} ],
        [ {"template": "x", "weight": 0.5}, {"template": "y", "weight": 0.5} ]
      ]
    }

BUILT-IN GRAMMAR (init)

  python random_art.py init grammar.json

Writes the grammar `render` uses when no --grammar is given, as a
starting point for edits.
"""


def _positive_int(s: str) -> int:
    try:
        v = int(s)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{s!r} is not an integer") from None
    if v <= 0:
        raise argparse.ArgumentTypeError(f"{s!r} must be > 0")
    return v


def _add_size_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--width", type=_positive_int, default=300, help="Image width.")
    p.add_argument("--height", type=_positive_int, default=200, help="Image height.")
    p.add_argument(
        "--seed", type=int, default=None, help="Seed for repeatable randomness."
    )


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="random_art.py",
        description="Grammar-generated expression trees rendered as images.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=HELP_EPILOG,
    )
    p.add_argument(
        "-v", "--verbose", action="store_true", help="Log generation details."
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    pr = sub.add_parser(
        "render",
        help="Generate a tree from a grammar and render it to an image.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pr.add_argument("output", help="Image path; the extension picks the format.")
    pr.add_argument(
        "--grammar", default=None, help="Grammar JSON (default: built-in grammar)."
    )
    pr.add_argument(
        "--depth", type=int, default=8, help="Nested rule expansions allowed."
    )
    pr.add_argument(
        "--attempts",
        type=_positive_int,
        default=DEFAULT_MAX_ATTEMPTS,
        help="Retries per rule expansion before it fails.",
    )
    _add_size_args(pr)

    pd = sub.add_parser(
        "demo",
        help="Render the built-in hand-written tree.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pd.add_argument("output", help="Image path; the extension picks the format.")
    _add_size_args(pd)

    pv = sub.add_parser(
        "validate",
        help="Validate a grammar JSON and try one generation.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pv.add_argument("grammar", help="Path to the grammar JSON.")
    pv.add_argument("--depth", type=int, default=8)
    pv.add_argument("--attempts", type=_positive_int, default=DEFAULT_MAX_ATTEMPTS)
    pv.add_argument("--seed", type=int, default=None)

    pi = sub.add_parser(
        "init",
        help="Write the built-in grammar to a JSON file.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    pi.add_argument("output", help="Where to write the grammar JSON.")

    return p


# -------------------------
# Commands
# -------------------------


class GenerationError(Exception):
    pass


def _print_progress(percent: int) -> None:
    print(f"Progress {percent}%\r", end="", file=sys.stderr, flush=True)


def _generate_or_fail(
    grammar: Grammar, depth: int, rng: random.Random, attempts: int
) -> Node:
    try:
        tree = generate(grammar, depth, rng, attempts)
    except RecursionError:
        raise GenerationError(
            f"grammar {grammar.name!r} nests too deeply for depth budget {depth}; "
            "try a smaller --depth"
        ) from None
    if tree is None:
        raise GenerationError(
            f"grammar {grammar.name!r} could not be satisfied within depth "
            f"budget {depth} ({attempts} attempts per rule)"
        )
    return tree


def _render_to(
    tree: Node, output: str, width: int, height: int, rng: random.Random
) -> None:
    img = render_image(tree, width, height, rng, progress=_print_progress)
    print(file=sys.stderr)
    write_image(img, output)
    logger.info("wrote %dx%d image to %s", width, height, output)


def cmd_render(
    output: str,
    grammar_path: str | None,
    *,
    width: int,
    height: int,
    depth: int,
    attempts: int,
    seed: int | None,
) -> None:
    grammar = load_grammar(grammar_path) if grammar_path else default_grammar()
    rng = random.Random(seed)

    tree = _generate_or_fail(grammar, depth, rng, attempts)
    logger.info(
        "generated %d nodes from %r: %s",
        sum(1 for _ in iter_nodes(tree)),
        grammar.name,
        format_node(tree),
    )
    _render_to(tree, output, width, height, rng)


def cmd_demo(output: str, *, width: int, height: int, seed: int | None) -> None:
    _render_to(demo_tree(), output, width, height, random.Random(seed))


def cmd_validate(
    grammar_path: str, *, depth: int, attempts: int, seed: int | None
) -> None:
    grammar = load_grammar(grammar_path)

    print(f"name: {grammar.name}")
    print(f"rule-sets: {len(grammar.rules)}")
    print(f"start: {grammar.start}")
    for i, rs in enumerate(grammar.rules):
        total = sum(p.weight for p in rs)
        print(f"  rule {i}: {len(rs)} productions, total weight {total:g}")
        if abs(total - 1.0) > 1e-6:
            print(f"warning: rule {i} weights sum to {total:g}, not 1")

    # A trial generation and a single evaluation catch grammars that never
    # terminate or do not produce a color.
    rng = random.Random(seed)
    tree = _generate_or_fail(grammar, depth, rng, attempts)
    print(f"sample nodes: {sum(1 for _ in iter_nodes(tree))}")
    eval_color(tree, (0.0, 0.0), rng)


def cmd_init(output: str) -> None:
    dump_json(grammar_to_json(default_grammar()), output)


def main(argv: list[str] | None = None) -> int:
    ap = build_argparser()
    args = ap.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.cmd == "render":
            cmd_render(
                args.output,
                args.grammar,
                width=args.width,
                height=args.height,
                depth=args.depth,
                attempts=args.attempts,
                seed=args.seed,
            )
        elif args.cmd == "demo":
            cmd_demo(args.output, width=args.width, height=args.height, seed=args.seed)
        elif args.cmd == "validate":
            cmd_validate(
                args.grammar, depth=args.depth, attempts=args.attempts, seed=args.seed
            )
        elif args.cmd == "init":
            cmd_init(args.output)
        else:
            raise AssertionError("unreachable")
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 2
    except OSError as e:
        print(f"File error: {e}", file=sys.stderr)
        return 2
    except GenerationError as e:
        print(f"Generation error: {e}", file=sys.stderr)
        return 1
    except EvalError as e:
        print(f"Evaluation error: {e}", file=sys.stderr)
        return 1
    except RecursionError:
        print("Evaluation error: expression tree too deep to evaluate", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
