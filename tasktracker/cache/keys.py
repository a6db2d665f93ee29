from tasktracker.tasks.schemas import TaskFilter

TASK_LIST_PREFIX = "tasks:list:"
TASK_STATS_KEY = "tasks:stats"


def task_key(task_id: str) -> str:
    return f"task:id:{task_id}"


def task_list_key(filters: TaskFilter) -> str:
    status = filters.status.value if filters.status else "all"
    priority = filters.priority.value if filters.priority else "all"
    return f"{TASK_LIST_PREFIX}{status}:{priority}:{filters.page}:{filters.limit}"
