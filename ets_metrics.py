"""
Energy Trade Settlement - Prometheus Metrics
Observability for the ledger rule engine and its HTTP gateway
"""

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry

# Create custom registry
metrics_registry = CollectorRegistry()

# ============================================
# BUSINESS METRICS
# ============================================

asset_created_counter = Counter(
    'ets_energy_assets_created_total',
    'Total number of energy assets created',
    registry=metrics_registry
)

asset_rejected_counter = Counter(
    'ets_energy_assets_rejected_total',
    'Total number of energy asset creations rejected',
    ['kind'],
    registry=metrics_registry
)

energy_amount_histogram = Histogram(
    'ets_energy_amount_units',
    'Energy amount per created asset',
    buckets=[1, 10, 50, 100, 500, 1000, 5000, 10000],
    registry=metrics_registry
)

reputation_update_counter = Counter(
    'ets_reputation_updates_total',
    'Total number of reputation score updates',
    ['direction'],  # up, down, none
    registry=metrics_registry
)

reputation_score_histogram = Histogram(
    'ets_reputation_score',
    'Distribution of reputation scores after update',
    buckets=[0, 10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
    registry=metrics_registry
)

# ============================================
# INVARIANT ENFORCEMENT METRICS
# ============================================

invariant_check_counter = Counter(
    'ets_invariant_checks_total',
    'Total number of invariant checks',
    ['invariant_id', 'criticality', 'check_type', 'result'],
    registry=metrics_registry
)

rollback_counter = Counter(
    'ets_rollbacks_total',
    'Total number of rollbacks executed',
    ['reason'],
    registry=metrics_registry
)

# ============================================
# INVOCATION METRICS
# ============================================

invocation_counter = Counter(
    'ets_invocations_total',
    'Total ledger function invocations',
    ['function', 'outcome'],
    registry=metrics_registry
)

invocation_duration_histogram = Histogram(
    'ets_invocation_duration_seconds',
    'Ledger function invocation duration',
    ['function'],
    buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0],
    registry=metrics_registry
)

system_health_gauge = Gauge(
    'ets_system_health_score',
    'Share of passed invariant checks (0-1)',
    registry=metrics_registry
)

ledger_integrity_gauge = Gauge(
    'ets_decision_ledger_integrity',
    'Decision ledger signature integrity (1=verified, 0=compromised)',
    registry=metrics_registry
)

# ============================================
# HELPER FUNCTIONS
# ============================================

def record_asset_created(energy_amount: float):
    asset_created_counter.inc()
    energy_amount_histogram.observe(energy_amount)

def record_invocation(function: str, outcome: str, duration: float):
    """Record one ledger function invocation."""
    invocation_counter.labels(function=function, outcome=outcome).inc()
    invocation_duration_histogram.labels(function=function).observe(duration)

def record_invariant_check(invariant_id: str, criticality: str, check_type: str, result: bool):
    invariant_check_counter.labels(
        invariant_id=invariant_id,
        criticality=criticality,
        check_type=check_type,
        result="passed" if result else "failed"
    ).inc()

def record_reputation_update(delta: float, score: float):
    direction = "up" if delta > 0 else "down" if delta < 0 else "none"
    reputation_update_counter.labels(direction=direction).inc()
    reputation_score_histogram.observe(score)

def update_system_health(health_score: float, ledger_integrity: bool):
    """Update system health metrics."""
    system_health_gauge.set(health_score)
    ledger_integrity_gauge.set(1 if ledger_integrity else 0)
