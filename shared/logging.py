import logging

from shared.settings import settings

NOISY_LOGGERS = ("httpx", "openai", "urllib3")


def configure_logging(level: str | None = None) -> None:
    resolved = getattr(logging, (level or settings.log_level).upper(), logging.INFO)
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))
