"""Payment/authorization workflow state machine.

Provides:
- a generic FSM engine (immutable definition, mutable instance)
- the two-stage payment then authorization workflow table
- JSON checkpoints of permanent states
- settings loaded from `.env`, structured logging and a small CLI
"""

__version__ = "0.1.0"

from auth_fsm.config import AuthFsmSettings

__all__ = ["__version__", "AuthFsmSettings"]
