from .event_bus import EventBus
from .conditions import evaluate
from .rules_engine import RulesEngine, RuleParseError, evaluate_rules, load_seed_rules, parse_rule
from .remote_scorer import RemoteScorer, ScoreResult
from .classifier import HeuristicClassifier
from .fanout import SubscriberRegistry, SubscriberTransport, WebSocketTransport
from .pipeline import DetectionPipeline

__all__ = [
    "EventBus",
    "evaluate",
    "RulesEngine",
    "RuleParseError",
    "evaluate_rules",
    "load_seed_rules",
    "parse_rule",
    "RemoteScorer",
    "ScoreResult",
    "HeuristicClassifier",
    "SubscriberRegistry",
    "SubscriberTransport",
    "WebSocketTransport",
    "DetectionPipeline",
]
