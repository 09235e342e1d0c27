import logging


def setup_logging(debug: bool) -> None:
    """Configure root logging once at application start-up."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    # SQL echo is controlled by the engine; keep the pool quiet.
    logging.getLogger("sqlalchemy.pool").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
