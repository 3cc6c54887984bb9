"""
Configuration Module
------------------
Reads runtime settings from the environment and configures logging.
"""

import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOOL_CALLS = 10
DEFAULT_PDF = "sample.pdf"
DEFAULT_LOG_FILE = "slide_tutor.log"

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass
class Settings:
    """Runtime settings for the chat model and the slide deck."""

    llm_api_key: str = ""
    llm_base_url: str = DEFAULT_BASE_URL
    llm_model: str = DEFAULT_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    max_tool_calls: int = DEFAULT_MAX_TOOL_CALLS
    contexts_path: Optional[Path] = None
    default_pdf: str = DEFAULT_PDF
    log_file: str = DEFAULT_LOG_FILE

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> "Settings":
        """
        Build settings from environment variables.

        Parameters
        ----------
        load_env_file : bool
            Whether to load a ``.env`` file into the environment first.

        Returns
        -------
        Settings
            The populated settings.

        Raises
        ------
        ValueError
            If a numeric variable cannot be parsed.
        """
        if load_env_file:
            load_dotenv()

        contexts_path = os.getenv("SLIDE_CONTEXTS_PATH")
        try:
            temperature = float(os.getenv("LLM_TEMPERATURE", DEFAULT_TEMPERATURE))
            max_tool_calls = int(os.getenv("MAX_TOOL_CALLS", DEFAULT_MAX_TOOL_CALLS))
        except ValueError as e:
            raise ValueError(f"Invalid numeric setting: {e}")

        return cls(
            llm_api_key=os.getenv("LLM_API_KEY", ""),
            llm_base_url=os.getenv("LLM_BASE_URL") or DEFAULT_BASE_URL,
            llm_model=os.getenv("LLM_MODEL") or DEFAULT_MODEL,
            temperature=temperature,
            max_tool_calls=max_tool_calls,
            contexts_path=Path(contexts_path) if contexts_path else None,
            default_pdf=os.getenv("DEFAULT_PDF") or DEFAULT_PDF,
            log_file=os.getenv("LOG_FILE") or DEFAULT_LOG_FILE,
        )


def setup_logging(log_file: str = DEFAULT_LOG_FILE, level: int = logging.INFO) -> None:
    """Configure root logging with a file and a console handler."""
    root = logging.getLogger()
    if root.handlers:
        return
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )
