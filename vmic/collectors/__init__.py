"""One collector per host subsystem."""

from .base import Collector, SectionBuilder
from .containers import ContainersCollector
from .cron import CronCollector
from .docker import DockerCollector
from .journal import JournalCollector
from .network import NetworkCollector
from .os_info import OsCollector
from .proc import ProcCollector
from .sar import SarCollector
from .security import SecurityCollector
from .services import ServicesCollector
from .storage import StorageCollector
from .users import UsersCollector
