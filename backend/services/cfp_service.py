"""
CFP service: owns the process-wide orchestrator used by routes and the
scheduler worker.
"""

import os
import sys
import logging
import threading

# Ensure project root on path when running from backend
_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if _PROJECT_ROOT not in sys.path:
    sys.path.insert(0, _PROJECT_ROOT)

from cfp.config import CFPConfig, load_env
from cfp.orchestrator import CFPOrchestrator

load_env()

logger = logging.getLogger(__name__)

_orchestrator: CFPOrchestrator | None = None
_lock = threading.Lock()


def get_orchestrator() -> CFPOrchestrator:
    """Build the orchestrator from env on first use."""
    global _orchestrator
    with _lock:
        if _orchestrator is None:
            config = CFPConfig.from_env()
            logger.info("Building CFP orchestrator: %s", config.to_dict())
            _orchestrator = CFPOrchestrator(config=config)
        return _orchestrator


def set_orchestrator(orchestrator: CFPOrchestrator | None) -> None:
    """Swap the shared orchestrator (tests inject one with fake collaborators)."""
    global _orchestrator
    with _lock:
        _orchestrator = orchestrator


def shutdown_orchestrator() -> None:
    global _orchestrator
    with _lock:
        if _orchestrator is not None:
            _orchestrator.close()
