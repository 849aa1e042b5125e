# Utils package
from .logging_utils import setup_logging, get_logger, LogTimer
from .rwlock import ReadWriteLock
from .tasks import TaskSupervisor

__all__ = ['setup_logging', 'get_logger', 'LogTimer', 'ReadWriteLock', 'TaskSupervisor']
