"""
Logging configuration for the CLI and the web app
"""
import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(log_level: str = "INFO"):
    """
    Setup logging configuration

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    numeric_level = getattr(logging, str(log_level).upper(), logging.INFO)

    # stdout carries JSON output, so logs go to stderr
    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )

    logging.getLogger("consignment_recon").setLevel(numeric_level)
    # Third-party readers are chatty at DEBUG
    logging.getLogger("chardet").setLevel(logging.WARNING)
    logging.getLogger("openpyxl").setLevel(logging.WARNING)
