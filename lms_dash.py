import logging

from client.config import Settings
from dashboard.ui import run_dashboard


def configure_logging(settings: Settings):
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO),
                        format='%(levelname)s: %(message)s')


if __name__ == "__main__":
    settings = Settings.from_env()
    configure_logging(settings)
    run_dashboard(settings)
