import logging

_HANDLER_NAME = "securevault"


def setup_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())

    # Repeated app construction (tests, reloads) must not stack handlers
    if any(h.get_name() == _HANDLER_NAME for h in root.handlers):
        return

    fmt = logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")

    ch = logging.StreamHandler()
    ch.set_name(_HANDLER_NAME)
    ch.setFormatter(fmt)
    root.addHandler(ch)
