import re
from enum import auto
from enum import StrEnum
from typing import Any
from typing import Final
from typing import Self

from pydantic import GetCoreSchemaHandler
from pydantic_core import CoreSchema
from pydantic_core import core_schema

from imbue.mailserver_testing.errors import InvalidContainerNameError
from imbue.mailserver_testing.errors import InvalidMailAccountError
from imbue.mailserver_testing.errors import InvalidServiceNameError
from imbue.mailserver_testing.errors import InvalidTimeoutError

# === Enums ===


class UpperCaseStrEnum(StrEnum):
    """A StrEnum that automatically converts enum member names to uppercase values."""

    @staticmethod
    def _generate_next_value_(
        name: str,
        start: int,
        count: int,
        last_values: list[str],
    ) -> str:
        return name.upper()


class ProbeOutcome(UpperCaseStrEnum):
    """Result of a single probe attempt."""

    SUCCESS = auto()
    NOT_READY = auto()
    FATAL = auto()


class PollStatus(UpperCaseStrEnum):
    """Terminal state of a polling call."""

    SUCCESS = auto()
    TIMEOUT_EXCEEDED = auto()
    FATAL_ABORT = auto()


class LogLevel(UpperCaseStrEnum):
    """Log verbosity level."""

    TRACE = auto()
    DEBUG = auto()
    INFO = auto()
    WARNING = auto()
    ERROR = auto()


# === Scalar types ===


class _ValidatedStr(str):
    @classmethod
    def __get_pydantic_core_schema__(
        cls,
        source_type: Any,
        handler: GetCoreSchemaHandler,
    ) -> CoreSchema:
        return core_schema.no_info_after_validator_function(
            cls,
            core_schema.str_schema(min_length=1),
            serialization=core_schema.to_string_ser_schema(),
        )


class ContainerName(_ValidatedStr):
    """Name (or ID) of a Docker container. Cannot be empty or whitespace-only."""

    def __new__(cls, value: str) -> Self:
        if not value or not value.strip():
            raise InvalidContainerNameError(value)
        return super().__new__(cls, value.strip())


class ServiceName(_ValidatedStr):
    """Name of a supervisord program inside the container."""

    def __new__(cls, value: str) -> Self:
        if not value or not value.strip():
            raise InvalidServiceNameError(value)
        return super().__new__(cls, value.strip())


_TIMEOUT_PATTERN: Final[re.Pattern[str]] = re.compile(r"[0-9]+")


class TimeoutSeconds(int):
    """A whole, non-negative number of seconds.

    Accepts ints and strings made only of digits. Anything else (including
    bools, floats, signs and surrounding whitespace) raises InvalidTimeoutError.
    """

    def __new__(cls, value: int | str) -> Self:
        if isinstance(value, bool):
            raise InvalidTimeoutError(value)
        if isinstance(value, int):
            if value < 0:
                raise InvalidTimeoutError(value)
            return super().__new__(cls, value)
        if isinstance(value, str) and _TIMEOUT_PATTERN.fullmatch(value):
            return super().__new__(cls, int(value))
        raise InvalidTimeoutError(value)

    @classmethod
    def __get_pydantic_core_schema__(
        cls,
        source_type: Any,
        handler: GetCoreSchemaHandler,
    ) -> CoreSchema:
        return core_schema.no_info_after_validator_function(
            cls,
            core_schema.union_schema([core_schema.int_schema(strict=True), core_schema.str_schema()]),
            serialization=core_schema.plain_serializer_function_ser_schema(int),
        )


class PortNumber(int):
    """A TCP port number (1-65535)."""

    def __new__(cls, value: int) -> Self:
        if not 1 <= value <= 65535:
            raise ValueError(f"{cls.__name__} must be between 1 and 65535, got {value}")
        return super().__new__(cls, value)

    @classmethod
    def __get_pydantic_core_schema__(
        cls,
        source_type: Any,
        handler: GetCoreSchemaHandler,
    ) -> CoreSchema:
        return core_schema.no_info_after_validator_function(
            cls,
            core_schema.int_schema(ge=1, le=65535),
        )


class MailAccount(_ValidatedStr):
    """A mail address of the form local@domain.

    The split happens on the last '@', so quoted local parts containing '@'
    keep everything before the final separator. "a@b@c" therefore has domain
    "c", not "b@c" as a split on the first '@' would give.
    """

    def __new__(cls, value: str) -> Self:
        stripped = value.strip() if value else ""
        local_part, separator, domain_part = stripped.rpartition("@")
        if not separator or not local_part or not domain_part:
            raise InvalidMailAccountError(value)
        return super().__new__(cls, stripped)

    @property
    def local_part(self) -> str:
        return self.rpartition("@")[0]

    @property
    def domain_part(self) -> str:
        return self.rpartition("@")[2]
