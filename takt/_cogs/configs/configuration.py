"""
All configuration flags, options, settings to fine-tune the loops.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

Some of the settings are flags, some are scalars, some are optional,
some are not (but all of them have reasonable defaults).

The settings are used mostly by the CLI (``takt run``), where they can be
loaded from a YAML file and then overridden by the command-line options.
The loops use only the execution group: to run the synchronous tasks.

Sample settings file::

    schedule:
      period: 10
      jitter_factor: 0.1
      sliding: false
    backoff:
      kind: exponential
      initial: 2
      maximum: 20
      factor: 2.0
    execution:
      max_workers: 4
"""
import concurrent.futures
import dataclasses
import os
from typing import Any, Mapping, Optional, Union

import yaml


class SettingsError(ValueError):
    """ The settings are malformed: unknown groups or fields, or wrong structure. """


@dataclasses.dataclass
class ScheduleSettings:
    """
    Settings for the fixed-period loops: ``until()`` & ``jitter_until()``.
    """

    period: float = 10.0
    """
    The base period between the task runs, in seconds.
    """

    jitter_factor: float = 0.0
    """
    A fraction of the period to be added randomly to every period.
    For ``0.1`` and the period of 10 seconds, the actual periods are 10-11 seconds.
    Zero or negative values disable the randomisation.
    """

    sliding: bool = True
    """
    Whether the period is counted from the task's end (``True``),
    or from the task's start including its execution time (``False``).
    """


@dataclasses.dataclass
class BackoffSettings:
    """
    Settings for the backoff-driven loops: ``backoff_until()`` & ``poll()``.
    """

    kind: Optional[str] = None
    """
    Either ``'exponential'``, or ``'jittered'``, or ``None`` for no backoff
    (the fixed-period schedule is used then).
    """

    initial: float = 1.0
    """
    The first delay of the exponential backoff; the base one of the jittered backoff.
    """

    maximum: float = 60.0
    """
    The cap of the exponential growth of the delays.
    """

    reset: Optional[float] = None
    """
    For how long the backoff should be idle to start from the initial delay again.
    ``None`` means never.
    """

    factor: float = 2.0
    """
    The multiplier of every next exponential delay. Must be greater than 1.
    """

    jitter: float = 0.0
    """
    A fraction of every delay to be added randomly. Zero disables it.
    """


@dataclasses.dataclass
class ExecutionSettings:
    """
    Settings for running the synchronous tasks & conditions in threads.
    """

    executor: concurrent.futures.Executor = dataclasses.field(
        default_factory=concurrent.futures.ThreadPoolExecutor)
    """
    The executor for the synchronous tasks & conditions of the loops.

    It can be replaced at runtime. The runs already started finish
    in the executor they were started in.
    """

    _max_workers: Optional[int] = None

    @property
    def max_workers(self) -> Optional[int]:
        """
        The size of the executor's pool; ``None`` means the executor's default.

        Shrinking it at runtime does not terminate the already started threads.
        """
        return self._max_workers

    @max_workers.setter
    def max_workers(self, value: int) -> None:
        if value < 1:
            raise ValueError(f"The pool size must be at least 1, got {value!r}.")
        self._max_workers = value

        if hasattr(self.executor, '_max_workers'):
            self.executor._max_workers = value  # type: ignore
        else:
            raise TypeError(f"The executor {self.executor!r} has no adjustable pool size.")


@dataclasses.dataclass
class Settings:
    schedule: ScheduleSettings = dataclasses.field(default_factory=ScheduleSettings)
    backoff: BackoffSettings = dataclasses.field(default_factory=BackoffSettings)
    execution: ExecutionSettings = dataclasses.field(default_factory=ExecutionSettings)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "Settings":
        """
        Build the settings from a plain mapping (e.g. parsed YAML/JSON).

        Only the known groups and fields are accepted, so that typos
        do not silently fall back to the defaults.
        """
        settings = cls()
        if data is None:
            return settings
        if not isinstance(data, Mapping):
            raise SettingsError(f"Settings must be a mapping, got {type(data).__name__}.")

        for group_name, group_data in data.items():
            if group_name not in ('schedule', 'backoff', 'execution'):
                raise SettingsError(f"Unknown settings group: {group_name!r}")
            if group_data is None:
                continue
            if not isinstance(group_data, Mapping):
                raise SettingsError(f"Settings group {group_name!r} must be a mapping.")

            group = getattr(settings, group_name)
            for field_name, value in group_data.items():
                if field_name.startswith('_') or not hasattr(group, field_name):
                    raise SettingsError(f"Unknown setting: {group_name}.{field_name}")
                if field_name == 'executor':
                    raise SettingsError("The executor can be set only in Python, not in files.")
                try:
                    setattr(group, field_name, value)
                except (TypeError, ValueError) as e:
                    raise SettingsError(f"Bad setting {group_name}.{field_name}: {e}") from e

        return settings


def load_settings(path: Union[str, "os.PathLike[str]"]) -> Settings:
    """ Load the settings from a YAML file. """
    with open(path, 'rt', encoding='utf-8') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise SettingsError(f"Cannot parse the settings file {path}: {e}") from e
    return Settings.from_mapping(data)
