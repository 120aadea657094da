from rebalancer.execution.interfaces import ExecutionVenue
from rebalancer.execution.paper import PaperFill, PaperVenue
from rebalancer.execution.strategies import STRATEGIES, resolve_strategy

__all__ = ["STRATEGIES", "ExecutionVenue", "PaperFill", "PaperVenue", "resolve_strategy"]
