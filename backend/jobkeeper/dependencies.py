from fastapi import Request

from .recurring import TaskManager


def get_task_manager(request: Request) -> TaskManager:
    """The TaskManager created by the application lifespan."""
    return request.app.state.task_manager
