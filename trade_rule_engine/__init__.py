"""
Trade Rule Engine.

============================================================
THE PRE-TRADE RULE GATE OF THE TRADING JOURNAL
============================================================

Decides, BEFORE a position is recorded in the journal, whether
the action is allowed, should warn the trader, or must be
blocked, and maintains a time-bounded lockout that persists
across actions.

============================================================
DATA FLOW
============================================================

trades + settings → Historical Aggregator → aggregates
aggregates + candidate + settings → Rule Evaluator → violations
violations + drawdown + lockout → Risk Status Aggregator → status
violations → Position Size Suggester → suggested size
goals + trades + settings → Goal Constraint Evaluator
                          → extra violations + settings patch

============================================================
SEVERITY
============================================================

- ERROR: blocks the action
- WARNING: surfaced, requires explicit confirmation
- INFO: surfaced only

An active lockout blocks everything, regardless of rules.

============================================================
USAGE
============================================================

```python
from trade_rule_engine import Candidate, create_rule_engine, get_default_config

settings = get_default_config()
settings.risk.max_risk_per_trade = 2.0
settings.rules.max_trades_per_day = 3

engine = create_rule_engine(settings=settings, trades=journal_trades)

candidate = Candidate(asset="EURUSD", entry_price=100, stop_loss=95, position_size=50)
violations = engine.evaluate(candidate)

if violations:
    size = engine.suggest_safe_position_size(candidate, violations)

status = engine.calculate_global_risk_status()
print(status.status, status.reasons)
```

============================================================
"""

# Types
from .types import (
    # Enums
    Severity,
    OverallStatus,
    TradeRuleStatus,
    DrawdownMode,
    TradeDirection,
    TradeStatus,
    TradingSession,
    RuleId,
    GoalPeriod,
    GoalMetric,
    GoalConstraintKind,
    # Records
    Violation,
    TradeRecord,
    Candidate,
    GoalConstraint,
    GoalConsequences,
    TradingGoal,
    ConfigurationPatch,
    # Outputs
    RiskStatus,
    SimulationResult,
    ActionDecision,
    # Errors
    RuleEngineError,
    ConfigurationError,
    StoreError,
)

# Configuration
from .config import (
    CapitalConfig,
    RiskConfig,
    AllowedHours,
    TradingRulesConfig,
    DisciplineConfig,
    SessionsConfig,
    LockoutState,
    GoalBlockState,
    EngineSettings,
    get_default_config,
    get_strict_config,
    get_testing_config,
    load_config_from_dict,
    load_config_from_env,
)

# Clock
from .clock import (
    Clock,
    SystemClock,
    MockClock,
)

# Components
from .aggregator import (
    HistoricalAggregator,
    WindowAggregates,
    RealTimeRiskMetrics,
    compute_real_time_metrics,
)
from .evaluator import (
    RuleEvaluator,
    record_trade,
    sort_violations,
    trade_rule_status,
)
from .rules import (
    DEFAULT_RULES,
    RuleCategory,
    TradingRule,
)
from .sizing import PositionSizeSuggester
from .lockout import (
    LockoutStateMachine,
    LockoutTransition,
    is_blocked,
)
from .goals import (
    GoalConstraintEvaluator,
    apply_patch,
)
from .status import RiskStatusAggregator
from .simulator import Simulator

# Stores
from .stores import (
    TradeStore,
    SettingsStore,
    GoalStore,
    ConsequenceLog,
    InMemoryTradeStore,
    InMemorySettingsStore,
    InMemoryGoalStore,
    InMemoryConsequenceLog,
)

# Engine
from .engine import (
    TradeRuleEngine,
    create_rule_engine,
    is_action_allowed,
)


__all__ = [
    # Types
    "Severity",
    "OverallStatus",
    "TradeRuleStatus",
    "DrawdownMode",
    "TradeDirection",
    "TradeStatus",
    "TradingSession",
    "RuleId",
    "GoalPeriod",
    "GoalMetric",
    "GoalConstraintKind",
    "Violation",
    "TradeRecord",
    "Candidate",
    "GoalConstraint",
    "GoalConsequences",
    "TradingGoal",
    "ConfigurationPatch",
    "RiskStatus",
    "SimulationResult",
    "ActionDecision",
    "RuleEngineError",
    "ConfigurationError",
    "StoreError",
    # Config
    "CapitalConfig",
    "RiskConfig",
    "AllowedHours",
    "TradingRulesConfig",
    "DisciplineConfig",
    "SessionsConfig",
    "LockoutState",
    "GoalBlockState",
    "EngineSettings",
    "get_default_config",
    "get_strict_config",
    "get_testing_config",
    "load_config_from_dict",
    "load_config_from_env",
    # Clock
    "Clock",
    "SystemClock",
    "MockClock",
    # Components
    "HistoricalAggregator",
    "WindowAggregates",
    "RealTimeRiskMetrics",
    "compute_real_time_metrics",
    "RuleEvaluator",
    "sort_violations",
    "record_trade",
    "trade_rule_status",
    "DEFAULT_RULES",
    "RuleCategory",
    "TradingRule",
    "PositionSizeSuggester",
    "LockoutStateMachine",
    "LockoutTransition",
    "is_blocked",
    "GoalConstraintEvaluator",
    "apply_patch",
    "RiskStatusAggregator",
    "Simulator",
    # Stores
    "TradeStore",
    "SettingsStore",
    "GoalStore",
    "ConsequenceLog",
    "InMemoryTradeStore",
    "InMemorySettingsStore",
    "InMemoryGoalStore",
    "InMemoryConsequenceLog",
    # Engine
    "TradeRuleEngine",
    "create_rule_engine",
    "is_action_allowed",
]


__version__ = "1.0.0"
