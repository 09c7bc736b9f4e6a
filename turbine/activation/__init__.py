"""Activation subsystem — lazy, trigger-driven loading of installed packages.

activation/
  dispatcher.py — TriggerDispatcher contract, Registration handles, LocalDispatcher
  host.py       — HostRuntime contract, PythonHost (sys.path + plugin/*.py)
  engine.py     — ActivationEngine state machine (registered → armed → activated)
"""

from turbine.activation.dispatcher import LocalDispatcher, Registration, TriggerDispatcher
from turbine.activation.engine import ActivationEngine, ActivationState
from turbine.activation.host import HostRuntime, PythonHost

__all__ = [
    "ActivationEngine",
    "ActivationState",
    "HostRuntime",
    "LocalDispatcher",
    "PythonHost",
    "Registration",
    "TriggerDispatcher",
]
