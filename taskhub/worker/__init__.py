"""
Worker module.
Claims tasks from the queue and executes them with registered handlers.
"""

from taskhub.worker.handlers import execute_task, get_handler, register_handler
from taskhub.worker.main import Worker, run

__all__ = ["Worker", "run", "execute_task", "get_handler", "register_handler"]
