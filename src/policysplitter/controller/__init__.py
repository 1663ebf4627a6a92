from __future__ import annotations

from policysplitter.controller.manager import Controller
from policysplitter.controller.workqueue import WorkQueue

__all__ = ["Controller", "WorkQueue"]
