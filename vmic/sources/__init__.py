"""DataSource adapters."""

from .base import DataSource, FsStat, HostIdentity
from .host import HostDataSource
from .static import StaticDataSource
