from __future__ import annotations

import re
import string
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Tuple, Union

import yaml

from bastion_harness.discovery.outputs import SUITE_FIELDS, ResolvedSuiteContext

CATALOG_ROOT = Path(__file__).resolve().parent / "catalog"


# ---------------------------------------------------------------------------
# Output matchers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Substring:
    expected: str

    def matches(self, output: str) -> bool:
        return self.expected in output


@dataclass(frozen=True)
class Regex:
    pattern: str

    def matches(self, output: str) -> bool:
        return re.search(self.pattern, output) is not None


@dataclass(frozen=True)
class NumericEquals:
    expected: float

    def matches(self, output: str) -> bool:
        try:
            return float(output.strip()) == float(self.expected)
        except ValueError:
            return False


Matcher = Union[Substring, Regex, NumericEquals]

_MATCHERS = {
    "contains": Substring,
    "regex": Regex,
    "equals": NumericEquals,
}


def matcher_from_spec(expect: Mapping[str, Any]) -> Matcher:
    if not isinstance(expect, Mapping) or len(expect) != 1:
        raise ValueError(f"expect must have exactly one of {sorted(_MATCHERS)}, got: {expect!r}")
    (kind, value), = expect.items()
    if kind not in _MATCHERS:
        raise ValueError(f"Unknown matcher {kind!r}; expected one of {sorted(_MATCHERS)}")
    if kind == "regex":
        re.compile(value)
    return _MATCHERS[kind](value)


# ---------------------------------------------------------------------------
# Suites
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TestCase:
    id: str
    description: str
    command: str
    matcher: Matcher
    params: Dict[str, Any] = field(default_factory=dict)

    # keep pytest from collecting this as a test class
    __test__ = False


@dataclass(frozen=True)
class SuiteDefinition:
    code: str
    name: str
    variants: Dict[int, str]
    requires: Tuple[str, ...]
    setup: Tuple[str, ...]
    tests: Tuple[TestCase, ...]
    teardown: Tuple[str, ...]
    # Variants that share host state must not overlap on the bastion.
    concurrent: bool = True

    def test_id(self, index: int, case: TestCase) -> str:
        return f"{self.code}-{index}-{case.id}"


def template_fields(ctx: ResolvedSuiteContext, region: str, params: Mapping[str, Any] = None) -> Dict[str, Any]:
    values = ctx.as_template_fields()
    values["index"] = ctx.suite_index
    values["region"] = region
    values.update(params or {})
    return values


def render_commands(templates: Tuple[str, ...], values: Mapping[str, Any]) -> List[str]:
    return [template.format(**values) for template in templates]


# Fields every command template may reference, besides a test's parameters.
TEMPLATE_FIELDS = frozenset(SUITE_FIELDS) | {"suite_index", "host_id", "index", "region"}


def _check_template(template: str, allowed) -> None:
    try:
        names = [name for _, name, _, _ in string.Formatter().parse(template) if name is not None]
    except ValueError as e:
        raise ValueError(f"Bad command template {template!r}: {e}") from None
    for name in names:
        root = re.split(r"[.\[]", name, maxsplit=1)[0]
        if root not in allowed:
            raise ValueError(
                f"Command template {template!r} references unknown field {{{name}}}; "
                "escape literal braces as {{ and }}"
            )


def _require_keys(obj: dict, keys: List[str], prefix: str) -> None:
    missing = [k for k in keys if k not in obj or obj[k] is None]
    if missing:
        raise ValueError(f"Missing required {prefix} keys: {missing}")


def _expand_tests(raw_tests: List[dict]) -> Tuple[TestCase, ...]:
    cases: List[TestCase] = []
    for raw in raw_tests:
        _require_keys(raw, ["id", "command", "expect"], "test")
        matcher = matcher_from_spec(raw["expect"])
        # A test without parameters still runs once.
        for params in raw.get("parameters") or [{}]:
            _check_template(str(raw["command"]), TEMPLATE_FIELDS | set(params))
            cases.append(
                TestCase(
                    id=str(raw["id"]).format(**params),
                    description=str(raw.get("description", "")).format(**params),
                    command=str(raw["command"]),
                    matcher=matcher,
                    params=dict(params),
                )
            )
    return tuple(cases)


def parse_suite(data: dict) -> SuiteDefinition:
    _require_keys(data, ["code", "name", "tests"], "suite")

    requires = tuple(data.get("requires") or ())
    unknown = [r for r in requires if r not in SUITE_FIELDS]
    if unknown:
        raise ValueError(f"Suite {data['code']} requires unknown outputs {unknown}; known: {list(SUITE_FIELDS)}")

    variants = {int(k): str(v) for k, v in (data.get("variants") or {}).items()}
    setup = tuple(data.get("setup") or ())
    teardown = tuple(data.get("teardown") or ())
    for template in setup + teardown:
        _check_template(template, TEMPLATE_FIELDS)

    return SuiteDefinition(
        code=str(data["code"]),
        name=str(data["name"]),
        variants=variants,
        requires=requires,
        setup=setup,
        tests=_expand_tests(data["tests"]),
        teardown=teardown,
        concurrent=bool(data.get("concurrent", True)),
    )


def load_suite(path: Union[str, Path]) -> SuiteDefinition:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Suite file not found: {p}")
    return parse_suite(yaml.safe_load(p.read_text(encoding="utf-8")) or {})


def load_catalog_suite(name: str) -> SuiteDefinition:
    return load_suite(CATALOG_ROOT / f"{name}.yaml")
