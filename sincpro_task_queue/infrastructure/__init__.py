from sincpro_task_queue.infrastructure.dispatcher import Dispatcher
from sincpro_task_queue.infrastructure.event_loop import EventLoop
from sincpro_task_queue.infrastructure.rendezvous import Rendezvous
from sincpro_task_queue.infrastructure.task_queue import TaskQueue

__all__ = ["Dispatcher", "EventLoop", "Rendezvous", "TaskQueue"]
