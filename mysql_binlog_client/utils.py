import signal
import threading
from logging import getLogger

logger = getLogger(__name__)


class GracefulKiller:
    kill_now = False

    def __init__(self):
        self._event = threading.Event()
        signal.signal(signal.SIGINT, self.exit_gracefully)
        signal.signal(signal.SIGTERM, self.exit_gracefully)

    def exit_gracefully(self, signum, frame):
        logger.info(f'received signal {signum}, stopping')
        self.kill_now = True
        self._event.set()

    def wait(self, timeout):
        """Sleep up to timeout seconds, True if a stop signal arrived."""
        return self._event.wait(timeout)


def new_daemon_thread(target, name):
    return threading.Thread(target=target, name=name, daemon=True)


def format_floats(data):
    if isinstance(data, dict):
        return {k: format_floats(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [format_floats(v) for v in data]
    elif isinstance(data, float):
        return round(data, 3)
    return data
