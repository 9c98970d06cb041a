"""Publish steps, in the order the sequencer runs them."""

from .base import Step, StepResult, RunState, PASSED, FAILED, SKIPPED
from .checkout import CheckoutStep
from .toolchain import ToolchainStep
from .build import BuildStep, CollectStep, collect_artifacts
from .auth import IdentityStep, ExchangeStep, VerifyStep
from .publish import PublishStep

__all__ = [
    "Step",
    "StepResult",
    "RunState",
    "PASSED",
    "FAILED",
    "SKIPPED",
    "CheckoutStep",
    "ToolchainStep",
    "BuildStep",
    "CollectStep",
    "IdentityStep",
    "ExchangeStep",
    "VerifyStep",
    "PublishStep",
    "collect_artifacts",
    "default_steps",
    "upload_steps",
]


def default_steps():
    """Return fresh instances of the standard publish sequence."""
    return [
        CheckoutStep(),
        ToolchainStep(),
        BuildStep(),
        IdentityStep(),
        ExchangeStep(),
        VerifyStep(),
        PublishStep(),
    ]


def upload_steps():
    """Return the sequence for publishing artifacts that are already built."""
    return [
        CollectStep(),
        IdentityStep(),
        ExchangeStep(),
        VerifyStep(),
        PublishStep(),
    ]
