"""Reconcile serverless application stacks with their templates.

The entry point is :class:`core_deploy.engine.ReconciliationEngine`; it needs a
:class:`core_deploy.provider.ProviderClient` such as
:class:`core_deploy.provider.ros.RosProvider`.
"""

__version__ = "0.1.0"

from .engine import ReconciliationEngine, DeployState  # noqa: E402
from .models import DeployOutcome, OutcomeStatus  # noqa: E402

__all__ = ["ReconciliationEngine", "DeployState", "DeployOutcome", "OutcomeStatus", "__version__"]
