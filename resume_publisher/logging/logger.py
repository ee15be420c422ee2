import logging
import sys


class Log:
    """Process-wide logger for the subsystem.

    Keyword arguments become ``key=value`` pairs after the message so job ids,
    actions and handles stay greppable in plain stdout logs.
    """

    _logger: logging.Logger = logging.getLogger("resume_publisher")

    @classmethod
    def configure(cls, log_level: str, app_env: str = "dev") -> None:
        """Set the level and attach a single stdout handler."""
        cls._logger.setLevel(log_level.upper())
        cls._logger.propagate = False
        if not cls._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(
                logging.Formatter(f"%(asctime)s [%(levelname)s] [{app_env}] %(message)s")
            )
            cls._logger.addHandler(handler)

    @classmethod
    def info(cls, message: str, **context: object) -> None:
        cls._logger.info(cls._format(message, context))

    @classmethod
    def error(cls, message: str, **context: object) -> None:
        cls._logger.error(cls._format(message, context))

    @classmethod
    def warning(cls, message: str, **context: object) -> None:
        cls._logger.warning(cls._format(message, context))

    @classmethod
    def debug(cls, message: str, **context: object) -> None:
        cls._logger.debug(cls._format(message, context))

    @classmethod
    def alert(cls, message: str, **context: object) -> None:
        """Error that operators must be paged for. Prefixed ``ALERT`` for log-based alerting."""
        cls._logger.error(cls._format(f"ALERT {message}", context))

    @staticmethod
    def _format(message: str, context: dict[str, object]) -> str:
        if not context:
            return message
        pairs = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
        return f"{message} {pairs}"
