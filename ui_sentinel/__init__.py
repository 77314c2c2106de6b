"""UI Sentinel - tiered diagnosis and remediation of UI test failures."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("ui-sentinel")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"
