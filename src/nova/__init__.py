# Nova builder package init
import logging
import os


def _configure_logging() -> None:
    level_name = (os.getenv("NOVA_LOG_LEVEL") or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    # "nova" for named loggers, the package name for getLogger(__name__) in modules
    for name in {"nova", __name__}:
        logger = logging.getLogger(name)
        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("[NOVA][%(levelname)s] %(message)s"))
            logger.addHandler(handler)
        logger.setLevel(level)

    llm_level_name = (os.getenv("NOVA_LLM_LOG_LEVEL") or level_name).upper()
    llm_level = getattr(logging, llm_level_name, level)
    logging.getLogger("nova.llm").setLevel(llm_level)


_configure_logging()
