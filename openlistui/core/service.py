"""Running-service status for the overview page."""

import logging
import os
import time

import psutil

from openlistui.branding import AppBranding

logger = logging.getLogger(__name__)


class ServiceMonitor:
    """Finds the OpenList server process and reports its resource use."""

    def __init__(self, binary_name: str = AppBranding.BINARY_NAME):
        self.binary_name = binary_name

    def find_process(self) -> psutil.Process | None:
        for proc in psutil.process_iter(['pid', 'name', 'exe', 'cmdline']):
            try:
                info = proc.info
                exe = os.path.basename(info.get('exe') or '')
                cmdline = info.get('cmdline') or []
                first = os.path.basename(cmdline[0]) if cmdline else ''
                if self.binary_name in (info.get('name'), exe, first):
                    return proc
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
        return None

    def status(self) -> dict:
        """Return ``{running, pid, uptime, cpu_percent, memory_mb}``."""
        proc = self.find_process()
        if proc is None:
            return {'running': False}
        try:
            with proc.oneshot():
                uptime = int(time.time() - proc.create_time())
                memory_mb = round(proc.memory_info().rss / 1024 / 1024, 1)
                cpu = proc.cpu_percent(interval=0.1)
        except (psutil.NoSuchProcess, psutil.AccessDenied) as e:
            logger.warning("Failed to read process stats: %s", e)
            return {'running': False}
        return {
            'running': True,
            'pid': proc.pid,
            'uptime': uptime,
            'cpu_percent': cpu,
            'memory_mb': memory_mb,
        }
