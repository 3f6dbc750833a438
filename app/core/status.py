from enum import Enum


class TaskStatus(str, Enum):
    inactive = "inactive"
    in_progress = "in_progress"
    paused = "paused"
    completed = "completed"
    no_executor = "no_executor"
    overdue = "overdue"
    not_started = "not_started"


class LogStatus(str, Enum):
    in_progress = "in_progress"
    paused = "paused"
    completed = "completed"


class LogAction(str, Enum):
    start = "start"
    pause = "pause"
    resume = "resume"
    stop = "stop"
