from .dispatcher import BackgroundTaskDispatcher, DeadLetter

__all__ = ["BackgroundTaskDispatcher", "DeadLetter"]
