"""
The main Takt module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the library's top-level interface,
# as it is seen by the users. So, we export the individual functions.

from takt._cogs.aiokits.aiostoppers import (
    CancellationToken,
    StopReason,
)
from takt._cogs.aiokits.aiotime import (
    Clock,
    RealClock,
    Timer,
)
from takt._cogs.configs.configuration import (
    Settings,
    ScheduleSettings,
    BackoffSettings,
    ExecutionSettings,
    SettingsError,
    load_settings,
)
from takt._cogs.helpers.typedefs import (
    Logger,
    Task,
)
from takt._core.actions.backoffs import (
    BackoffConfigError,
    BackoffManager,
    ExponentialBackoffManager,
    JitteredBackoffManager,
    jitter,
)
from takt._core.engines.loggers import (
    LogFormat,
    LoopLogger,
    configure,
)
from takt._core.engines.loops import (
    forever,
    until,
    jitter_until,
    backoff_until,
    poll,
)

__all__ = [
    'CancellationToken', 'StopReason',
    'Clock', 'RealClock', 'Timer',
    'Settings', 'ScheduleSettings', 'BackoffSettings', 'ExecutionSettings',
    'SettingsError', 'load_settings',
    'Logger', 'Task',
    'BackoffConfigError', 'BackoffManager',
    'ExponentialBackoffManager', 'JitteredBackoffManager',
    'jitter',
    'LogFormat', 'LoopLogger', 'configure',
    'forever', 'until', 'jitter_until', 'backoff_until', 'poll',
]
