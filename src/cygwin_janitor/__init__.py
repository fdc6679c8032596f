"""!
@brief Cygwin Janitor package root.
@details Modules under this namespace discover and remove the services,
processes, directories, environment entries, registry keys and shortcuts a
Cygwin installation leaves on a Windows host.
"""

__all__ = [
    "main",
    "scrub",
    "constants",
    "report",
    "services",
    "processes",
    "locations",
    "fs_tools",
    "safety",
    "environment",
    "registry_tools",
    "shortcuts",
    "elevation",
    "exec_utils",
    "logging_ext",
    "version",
]
