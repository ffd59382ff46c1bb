"""Correlation of sockets, processes, cgroups and containers."""

from .correlator import (
    HOST,
    UNKNOWN,
    CorrelationResult,
    Correlator,
    build_socket_owner_map,
    classify_listener,
    parse_cgroup_path,
)
from .runtimes import RUNTIME_MATCHERS, ContainerRef, match_container, storage_runtime
from .sockets import SocketEntry, parse_socket_table
