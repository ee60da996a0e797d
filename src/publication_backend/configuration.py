from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

# Load environment variables from .env file
load_dotenv()

CONFIG_PATH = Path(__file__).resolve().with_name("config.yaml")
CONFIG_ENV_VAR = "PUBLICATION_CONFIG"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@lru_cache(maxsize=1)
def _load_default_config() -> DictConfig:
    if not CONFIG_PATH.exists():
        raise FileNotFoundError(f"Default config not found at {CONFIG_PATH}")
    return OmegaConf.load(CONFIG_PATH)


def load_settings(overrides: Optional[Dict[str, Any]] = None) -> DictConfig:
    """
    Build the runtime settings.

    Layers, lowest first: packaged config.yaml, the YAML file named by
    $PUBLICATION_CONFIG (if set), then ``overrides``. Environment variables are
    read through ``${oc.env:...}`` interpolations when a value is accessed.

    Raises:
        FileNotFoundError: If $PUBLICATION_CONFIG points to a missing file
        omegaconf.errors.ConfigKeyError: If an override names an unknown key
    """
    base_container = OmegaConf.to_container(_load_default_config(), resolve=False)
    base = OmegaConf.create(base_container)
    OmegaConf.set_struct(base, True)

    layers = [base]
    extra_path = os.environ.get(CONFIG_ENV_VAR)
    if extra_path:
        path = Path(extra_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file from ${CONFIG_ENV_VAR} not found at {path}")
        layers.append(OmegaConf.load(path))
    if overrides:
        layers.append(OmegaConf.create(overrides))

    return DictConfig(OmegaConf.merge(*layers))


def configure_logging(settings: DictConfig) -> None:
    level = str(settings.logging.level).upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
