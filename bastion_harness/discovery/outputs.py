from __future__ import annotations

import logging
import re
from dataclasses import dataclass, fields
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from bastion_harness.errors import MalformedDiscoveryKey, MissingOutput

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutputRecord:
    key: str
    value: str


@dataclass(frozen=True)
class ResolvedSuiteContext:
    suite_index: int
    host_id: str
    endpoint: Optional[str] = None
    secret_ref: Optional[str] = None
    database_secret_ref: Optional[str] = None
    log_group_name: Optional[str] = None

    def as_template_fields(self) -> Dict[str, object]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


SUITE_FIELDS = tuple(f.name for f in fields(ResolvedSuiteContext) if f.name not in ("suite_index", "host_id"))


# ---------------------------------------------------------------------------
# Key matchers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HostMatch:
    record: OutputRecord


@dataclass(frozen=True)
class SuiteMatch:
    record: OutputRecord
    field: str
    index: int


@dataclass(frozen=True)
class HostIdentifierKey:
    """Bare key carrying the bastion instance id."""
    name: str

    def match(self, key: str, value: str, suite_code: str) -> Optional[HostMatch]:
        if key != self.name:
            return None
        return HostMatch(OutputRecord(key, value))


@dataclass(frozen=True)
class SuiteIndexedKey:
    """
    `<prefix><SUITE CODE><index>` key feeding one ResolvedSuiteContext field.

    The prefix is compared case-insensitively: the provisioning tier emits
    `certSecretARN...` where older stacks used `CertSecretARN...`.
    """
    field: str
    prefix: str

    def match(self, key: str, value: str, suite_code: str) -> Optional[SuiteMatch]:
        head = re.compile(re.escape(self.prefix + suite_code) + r"(?P<suffix>.*)", re.IGNORECASE)
        m = head.fullmatch(key)
        if not m:
            return None

        suffix = m.group("suffix")
        if suffix[:1].isalpha():
            # Longer suite code sharing our prefix (e.g. "WFS" seen from "WF").
            return None
        if not re.fullmatch(r"\d+", suffix) or int(suffix) < 1:
            raise MalformedDiscoveryKey(
                f"Output key {key!r} has no positive suite index after {self.prefix + suite_code!r}"
            )
        return SuiteMatch(OutputRecord(key, value), self.field, int(suffix))


KeyMatcher = Union[HostIdentifierKey, SuiteIndexedKey]

# Order matters only for prefixes that overlap once the suite code is appended;
# fullmatch keeps "secretARN" from claiming "certSecretARN" keys.
DEFAULT_MATCHERS: Tuple[KeyMatcher, ...] = (
    HostIdentifierKey("bastionId"),
    SuiteIndexedKey("endpoint", "renderQueueEndpoint"),
    SuiteIndexedKey("secret_ref", "CertSecretARN"),
    SuiteIndexedKey("database_secret_ref", "secretARN"),
    SuiteIndexedKey("log_group_name", "logGroupName"),
)


# ---------------------------------------------------------------------------
# Directory
# ---------------------------------------------------------------------------

def _endpoint_is_resolved(value: str) -> bool:
    # The provisioning tier only picks an address for ports 8080 and 4433;
    # anything else comes through as "undefined:<port>".
    host, _, port = value.rpartition(":")
    return bool(host) and host != "undefined" and port.isdigit()


class OutputDirectory:
    """Typed, index-keyed view over the flat outputs of the provisioning phase."""

    def __init__(self, suite_code: str, host: Optional[OutputRecord], suites: Dict[int, Dict[str, OutputRecord]]):
        self.suite_code = suite_code
        self._host = host
        self._suites = suites

    @classmethod
    def resolve(
        cls,
        raw_outputs: Mapping[str, str],
        suite_code: str,
        matchers: Iterable[KeyMatcher] = DEFAULT_MATCHERS,
    ) -> "OutputDirectory":
        matchers = tuple(matchers)
        host: Optional[OutputRecord] = None
        suites: Dict[int, Dict[str, OutputRecord]] = {}

        for key, value in raw_outputs.items():
            for matcher in matchers:
                found = matcher.match(key, value, suite_code)
                if found is None:
                    continue
                if isinstance(found, HostMatch):
                    host = found.record
                else:
                    suites.setdefault(found.index, {})[found.field] = found.record
                break
            else:
                logger.debug("Ignoring unrecognized output %s", key)

        return cls(suite_code, host, suites)

    def host_id(self) -> str:
        if self._host is None or not self._host.value:
            raise MissingOutput("No bastion host id among the provisioning outputs")
        return self._host.value

    def suite_indexes(self) -> List[int]:
        return sorted(self._suites)

    def _context(self, index: int) -> ResolvedSuiteContext:
        host_id = self.host_id()

        records = self._suites.get(index)
        if not records:
            raise MissingOutput(f"No outputs for suite {self.suite_code}{index}")

        values = {name: record.value for name, record in records.items()}
        return ResolvedSuiteContext(suite_index=index, host_id=host_id, **values)

    def for_suite(self, index: int, required: Iterable[str] = ()) -> ResolvedSuiteContext:
        ctx = self._context(index)
        values = ctx.as_template_fields()

        endpoint = values.get("endpoint")
        if endpoint is not None and not _endpoint_is_resolved(endpoint):
            raise MissingOutput(
                f"Render queue endpoint for {self.suite_code}{index} was never resolved: {endpoint!r}"
            )

        missing = [name for name in required if not values.get(name)]
        if missing:
            raise MissingOutput(f"Suite {self.suite_code}{index} is missing outputs: {missing}")

        return ctx

    def suites(self) -> List[ResolvedSuiteContext]:
        """Every discovered suite, as recorded. Endpoints are not validated here."""
        return [self._context(index) for index in self.suite_indexes()]
