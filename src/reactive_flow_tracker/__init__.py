"""
Reactive flow tracker package.

Verifies cross-chain automations run through the Reactive Network, from the
origin transaction to the callback executed on the destination chain.
"""

from .config import ChainConfig, ChainRegistry, TrackerConfig, TrackingConfig
from .errors import ConfigurationError
from .flow_tracker import FlowTracker, track_flow
from .models import FlowRequest, FlowStatus, StepState, StepStatus

__all__ = [
    "ChainConfig",
    "ChainRegistry",
    "ConfigurationError",
    "FlowRequest",
    "FlowStatus",
    "FlowTracker",
    "StepState",
    "StepStatus",
    "TrackerConfig",
    "TrackingConfig",
    "track_flow",
]
__version__ = "0.1.0"
