"""
Gravity Harness Package

Scenario test engine for the Gravity bridge halt / recovery scenario.

Core imports are lazily loaded so that importing a submodule does not pull
in the whole engine. For direct module access, import from submodules:

    from gravity_harness.scenario import ScenarioOrchestrator
    from gravity_harness.validators import ValidatorSet
    from gravity_harness.simulation import build_simulation
"""

__version__ = "1.0.0"


def __getattr__(name):
    """Lazy loading of the most used entry points."""
    if name == 'ScenarioOrchestrator':
        from .scenario import ScenarioOrchestrator
        return ScenarioOrchestrator
    elif name == 'ValidatorSet':
        from .validators import ValidatorSet
        return ValidatorSet
    elif name == 'HarnessConfig':
        from .config import HarnessConfig
        return HarnessConfig
    raise AttributeError(f"module 'gravity_harness' has no attribute {name!r}")


__all__ = ['ScenarioOrchestrator', 'ValidatorSet', 'HarnessConfig']
