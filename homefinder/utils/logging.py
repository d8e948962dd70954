import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """
    Utility function to set up process-wide logging once at app creation.
    Supabase's HTTP client is chatty at INFO, so it is held at WARNING.
    """
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logging.getLogger("homefinder").setLevel(level.upper())
    logging.getLogger("httpx").setLevel(logging.WARNING)
