from .senders import LoggingEmailSender, LoggingNotifier, LoggingSmsSender

__all__ = ["LoggingEmailSender", "LoggingNotifier", "LoggingSmsSender"]
