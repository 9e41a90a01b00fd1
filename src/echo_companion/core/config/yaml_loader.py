"""
YAML loading helpers shared by the config file and the persona prompts file.
"""

from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from ..logging import get_logger

logger = get_logger(__name__)


class YAMLConfigLoader:
    """YAML loader with consistent error handling."""

    @staticmethod
    def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
        """
        Load a YAML mapping.

        Args:
            path: Path to YAML file

        Returns:
            Dictionary containing YAML data, empty dict if the file is empty
            or its top level is not a mapping

        Raises:
            FileNotFoundError: If file doesn't exist
            yaml.YAMLError: If YAML parsing fails
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"YAML file not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error("Failed to parse YAML file", path=str(path), error=str(e))
            raise

        if data is None:
            logger.warning("YAML file is empty", path=str(path))
            return {}

        logger.debug("Loaded YAML", path=str(path))
        return data if isinstance(data, dict) else {}

    @staticmethod
    def load_yaml_safe(
        path: Union[str, Path], default: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Load a YAML mapping, returning ``default`` on any error."""
        if default is None:
            default = {}

        try:
            return YAMLConfigLoader.load_yaml(path)
        except (OSError, yaml.YAMLError) as e:
            logger.warning(
                "Failed to load YAML file, using default", path=str(path), error=str(e)
            )
            return default
