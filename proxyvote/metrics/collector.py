"""
ProxyVote Prometheus Metrics Collector

Renders the Prometheus text exposition format (0.0.4) directly, so the
engine adds no exporter dependency to its host.

Metric types:
    - Counter  : monotonically increasing (e.g. votes_cast_total)
    - Gauge    : can go up and down (e.g. active_lockups)
    - Histogram: distribution of vote power per ballot
"""

from __future__ import annotations

import bisect
import threading
from typing import Dict, List, Optional, Sequence, Tuple, Union

Number = Union[int, float]


# ---------------------------------------------------------------------------
# Metric primitives
# ---------------------------------------------------------------------------

class _Metric:
    """Name, help text and lock shared by every metric type."""

    kind = "untyped"

    def __init__(self, name: str, help: str = ""):
        self.name = name
        self.help = help
        self._lock = threading.Lock()

    def _header(self) -> List[str]:
        lines = [f"# HELP {self.name} {self.help}"] if self.help else []
        lines.append(f"# TYPE {self.name} {self.kind}")
        return lines

    def samples(self) -> List[Tuple[str, Number]]:
        raise NotImplementedError

    def expose(self) -> str:
        lines = self._header()
        lines.extend(f"{sample} {value}" for sample, value in self.samples())
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class _SingleValue(_Metric):

    def __init__(self, name: str, help: str = ""):
        super().__init__(name, help)
        self._value: Number = 0.0

    @property
    def value(self) -> Number:
        return self._value

    def samples(self) -> List[Tuple[str, Number]]:
        return [(self.name, self._value)]


class Counter(_SingleValue):
    """Monotonically increasing counter."""

    kind = "counter"

    def inc(self, amount: Number = 1.0) -> None:
        if amount < 0:
            raise ValueError("Counter can only be incremented")
        with self._lock:
            self._value += amount


class Gauge(_SingleValue):
    """Value that can go up and down."""

    kind = "gauge"

    def inc(self, amount: Number = 1.0) -> None:
        with self._lock:
            self._value += amount

    def dec(self, amount: Number = 1.0) -> None:
        with self._lock:
            self._value -= amount

    def set(self, value: Number) -> None:
        with self._lock:
            self._value = value


# Vote power per ballot
POWER_BUCKETS: Tuple[Number, ...] = (
    1, 2, 5, 10, 25, 50, 100, 250, 1000, 10_000, 100_000,
)


class Histogram(_Metric):
    """Histogram over fixed upper bounds; exposition is cumulative."""

    kind = "histogram"

    def __init__(self, name: str, help: str = "", buckets: Sequence[Number] = POWER_BUCKETS):
        super().__init__(name, help)
        self.buckets: Tuple[Number, ...] = tuple(sorted(buckets))
        # one slot per bound plus the +Inf overflow slot
        self._counts: List[int] = [0] * (len(self.buckets) + 1)
        self._sum: Number = 0
        self._count = 0

    def observe(self, value: Number) -> None:
        with self._lock:
            self._counts[bisect.bisect_left(self.buckets, value)] += 1
            self._sum += value
            self._count += 1

    @property
    def count(self) -> int:
        return self._count

    @property
    def sum(self) -> Number:
        return self._sum

    def samples(self) -> List[Tuple[str, Number]]:
        rows: List[Tuple[str, Number]] = []
        cumulative = 0
        for bound, hits in zip(self.buckets, self._counts):
            cumulative += hits
            rows.append((f'{self.name}_bucket{{le="{bound}"}}', cumulative))
        rows.append((f'{self.name}_bucket{{le="+Inf"}}', self._count))
        rows.append((f"{self.name}_sum", self._sum))
        rows.append((f"{self.name}_count", self._count))
        return rows


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class MetricsRegistry:
    """Named metrics rendered together as one exposition body."""

    def __init__(self):
        self._metrics: Dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def register(self, metric: _Metric) -> _Metric:
        with self._lock:
            if metric.name in self._metrics:
                raise ValueError(f"Metric already registered: {metric.name}")
            self._metrics[metric.name] = metric
        return metric

    def get(self, name: str) -> Optional[_Metric]:
        return self._metrics.get(name)

    @property
    def metric_count(self) -> int:
        return len(self._metrics)

    def expose(self) -> str:
        with self._lock:
            parts = [metric.expose() for metric in self._metrics.values()]
        return "\n\n".join(parts) + "\n"


# ---------------------------------------------------------------------------
# Governance collector: pre-registers the engine's standard metrics
# ---------------------------------------------------------------------------

class GovernanceMetrics:
    """
    Pre-configured metrics for a governance deployment.

    One instance is shared by all components built by
    ``proxyvote.governance.build_governance``; call ``expose()`` to get the
    Prometheus endpoint body.
    """

    def __init__(self, namespace: str = "proxyvote"):
        self.registry = MetricsRegistry()
        ns = namespace

        # --- Proposal metrics ---
        self.proposals_created = Counter(
            f"{ns}_proposals_created_total",
            "Total proposals created",
        )
        self.proposals_executed = Counter(
            f"{ns}_proposals_executed_total",
            "Total proposals executed",
        )
        self.executions_failed = Counter(
            f"{ns}_executions_failed_total",
            "Total execution attempts whose target call failed",
        )

        # --- Voting metrics ---
        self.votes_cast = Counter(
            f"{ns}_votes_cast_total",
            "Total votes recorded",
        )
        self.delegated_votes_cast = Counter(
            f"{ns}_delegated_votes_cast_total",
            "Votes cast by a delegate on behalf of a voter",
        )
        self.vote_power = Histogram(
            f"{ns}_vote_power",
            "Voting power used per ballot",
        )
        self.active_delegations = Gauge(
            f"{ns}_active_delegations",
            "Number of active delegations",
        )

        # --- Membership metrics ---
        self.members = Gauge(
            f"{ns}_members",
            "Active registered members",
        )

        # --- Lockup metrics ---
        self.active_lockups = Gauge(
            f"{ns}_active_lockups",
            "Number of active token lockups",
        )
        self.tokens_locked = Gauge(
            f"{ns}_tokens_locked",
            "Token units currently held in lockup custody",
        )

        for attr_name in dir(self):
            attr = getattr(self, attr_name)
            if isinstance(attr, _Metric):
                self.registry.register(attr)

    def expose(self) -> str:
        return self.registry.expose()
