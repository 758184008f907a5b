"""
amplugins: job-step plugins for a distributed analysis manager.

Each step stages its inputs, drives an external analysis tool and post-processes
the tool's output into normalized result files and database records.
"""
from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("amplugins")
except PackageNotFoundError:
    __version__ = "unknown"
__app_name__ = "AM Plugins"
