import logging

logger = logging.getLogger("aggregation_engine")


def get_logger(name: str):
    if name.startswith("aggregation_engine."):
        name = name[len("aggregation_engine."):]
    return logger.getChild(name)
