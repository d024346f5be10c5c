"""esfan: Run JavaScript source in many engines and compare the results."""

from .aggregator import AggregatedRow, AggregateReport, ResultAggregator
from .config import Config, Defaults, HostDescriptor, load_config, save_config
from .engine import DefaultEngineRunner, EvalOptions, EvalOutcome, HostError
from .executor import Dispatcher, HostResult, HostStatus
from .registry import HostRegistry
from .renderers import PlainRenderer, TableRenderer, make_renderer
from .selector import HostSelection, select_hosts

__all__ = [
    "AggregatedRow",
    "AggregateReport",
    "ResultAggregator",
    "Config",
    "Defaults",
    "HostDescriptor",
    "load_config",
    "save_config",
    "DefaultEngineRunner",
    "EvalOptions",
    "EvalOutcome",
    "HostError",
    "Dispatcher",
    "HostResult",
    "HostStatus",
    "HostRegistry",
    "PlainRenderer",
    "TableRenderer",
    "make_renderer",
    "HostSelection",
    "select_hosts",
]
