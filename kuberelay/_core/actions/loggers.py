"""
Logging of the relay sessions: per-session loggers and the log formatting.

Every relay session logs via its own `SessionLogger`, which carries
the session's reference (what is relayed: a pod or a resource kind).
The reference is rendered as a prefix in the text logs, or as a field
in the JSON logs -- so that the interleaved messages of many concurrent
sessions can be told apart.
"""
import copy
import enum
import logging
from typing import Any, MutableMapping, Optional, Tuple

from pythonjsonlogger.core import RESERVED_ATTRS
from pythonjsonlogger.json import JsonFormatter

DEFAULT_JSON_REFKEY = 'session'
""" A key for session references in JSON logs, as seen by the log parsers. """


class LogFormat(enum.Enum):
    """ Log formats, as specified on CLI. """
    PLAIN = '%(message)s'
    FULL = '[%(asctime)s] %(name)-20.20s [%(levelname)-8.8s] %(message)s'
    JSON = enum.auto()


class SessionFormatter(logging.Formatter):
    pass


class SessionTextFormatter(SessionFormatter, logging.Formatter):
    pass


class SessionJsonFormatter(SessionFormatter, JsonFormatter):
    def __init__(
            self,
            *args: Any,
            refkey: Optional[str] = None,
            **kwargs: Any,
    ) -> None:
        # Avoid type checking, as the args are not in the parent consructor.
        reserved_attrs = set(kwargs.pop('reserved_attrs', RESERVED_ATTRS))
        reserved_attrs |= {'relay_ref'}
        kwargs.update(reserved_attrs=reserved_attrs)
        kwargs.setdefault('timestamp', True)
        super().__init__(*args, **kwargs)
        self._refkey: str = refkey or DEFAULT_JSON_REFKEY

    def add_fields(
            self,
            log_record: MutableMapping[str, Any],
            record: logging.LogRecord,
            message_dict: MutableMapping[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if self._refkey and hasattr(record, 'relay_ref'):
            ref = getattr(record, 'relay_ref')
            log_record[self._refkey] = ref

        if 'severity' not in log_record:
            log_record['severity'] = (
                "debug" if record.levelno <= logging.DEBUG else
                "info" if record.levelno <= logging.INFO else
                "warn" if record.levelno <= logging.WARNING else
                "error" if record.levelno <= logging.ERROR else
                "fatal")


class SessionPrefixingMixin(SessionFormatter):
    def format(self, record: logging.LogRecord) -> str:
        if hasattr(record, 'relay_ref'):
            ref = getattr(record, 'relay_ref')
            namespace = ref.get('namespace') or ''
            name = ref.get('name') or ''
            kind = ref.get('kind') or ''
            prefix = (f"[{namespace}/{name}]" if namespace else
                      f"[{name}]" if name else
                      f"[{kind}]")
            record = copy.copy(record)  # shallow
            record.msg = f"{prefix} {record.msg}"
        return super().format(record)


class SessionPrefixingTextFormatter(SessionPrefixingMixin, SessionTextFormatter):
    pass


class SessionPrefixingJsonFormatter(SessionPrefixingMixin, SessionJsonFormatter):
    pass


class SessionLogger(logging.LoggerAdapter):  # type: ignore[type-arg]
    """
    A logger/adapter to carry the session's reference for formatting.

    Constructed for every relay session. The reference is a small dict:
    the relayed kind (``pod`` for the logs), and the namespace and name
    of the relayed object, if it is a specific object.
    """

    def __init__(
            self,
            *,
            kind: str,
            namespace: Optional[str] = None,
            name: Optional[str] = None,
    ) -> None:
        super().__init__(logger, dict(
            relay_ref=dict(
                kind=kind,
                namespace=namespace,
                name=name,
            ),
        ))

    def process(
            self,
            msg: str,
            kwargs: MutableMapping[str, Any],
    ) -> Tuple[str, MutableMapping[str, Any]]:
        # Native logging overwrites the message's extra with the adapter's extra.
        # We merge them, so that both message's & adapter's extras are available.
        kwargs["extra"] = dict(self.extra or {}, **kwargs.get('extra', {}))
        return msg, kwargs


logger = logging.getLogger('kuberelay.sessions')


def configure(
        debug: Optional[bool] = None,
        verbose: Optional[bool] = None,
        quiet: Optional[bool] = None,
        log_format: LogFormat = LogFormat.FULL,
        log_prefix: Optional[bool] = False,
        log_refkey: Optional[str] = None,
) -> None:
    log_level = 'DEBUG' if debug or verbose else 'WARNING' if quiet else 'INFO'
    formatter = make_formatter(log_format=log_format, log_prefix=log_prefix, log_refkey=log_refkey)
    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.addHandler(handler)
    logger.setLevel(log_level)

    # Prevent the low-level logging unless in the debug mode. Keep only the relay's messages.
    # For no-propagation loggers, add a dummy null handler to prevent printing the messages.
    for name in ['asyncio', 'aiohttp']:
        logger = logging.getLogger(name)
        logger.propagate = bool(debug)
        if not debug:
            logger.handlers[:] = [logging.NullHandler()]


def make_formatter(
        log_format: LogFormat = LogFormat.FULL,
        log_prefix: Optional[bool] = False,
        log_refkey: Optional[str] = None,
) -> SessionFormatter:
    log_prefix = log_prefix if log_prefix is not None else bool(log_format is not LogFormat.JSON)
    if log_format is LogFormat.JSON:
        if log_prefix:
            return SessionPrefixingJsonFormatter(refkey=log_refkey)
        else:
            return SessionJsonFormatter(refkey=log_refkey)
    elif isinstance(log_format, LogFormat):
        if log_prefix:
            return SessionPrefixingTextFormatter(log_format.value)
        else:
            return SessionTextFormatter(log_format.value)
    elif isinstance(log_format, str):
        if log_prefix:
            return SessionPrefixingTextFormatter(log_format)
        else:
            return SessionTextFormatter(log_format)
    else:
        raise ValueError(f"Unsupported log format: {log_format!r}")
