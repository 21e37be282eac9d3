"""
Variable Loader

Reads Terraform variable defaults and tfvars files and turns the merged
values into a NetworkSpec.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import hcl2
from lark.exceptions import UnexpectedInput, UnexpectedToken

from .network_spec import NetworkSpec

logger = logging.getLogger(__name__)


class VariableLoader:
    """Collects module variables from a directory of Terraform files."""

    def __init__(self, directory: Union[str, Path], extra_files: Optional[List[Union[str, Path]]] = None):
        """Parse files in the given directory.

        Args:
            directory: Path to directory containing Terraform files
            extra_files: Additional tfvars files, applied last in the given order
        """
        self.directory = Path(directory)
        self._variables: Dict[str, Any] = {}

        # Parse files in order of precedence
        self._parse_variable_defaults()
        self._parse_tfvars()
        for tfvars_file in extra_files or []:
            self._load_tfvars_file(Path(tfvars_file))

    @property
    def variables(self) -> Dict[str, Any]:
        return dict(self._variables)

    def _parse_tfvars(self) -> None:
        """Parse .auto.tfvars files, then terraform.tfvars.

        Files are parsed in alphabetical order, with later files overriding earlier ones.
        terraform.tfvars is parsed last to give it highest precedence.
        """
        tfvars_files = sorted(self.directory.glob("*.auto.tfvars"))

        terraform_tfvars = self.directory / "terraform.tfvars"
        if terraform_tfvars.exists():
            tfvars_files.append(terraform_tfvars)

        for tfvars_file in tfvars_files:
            self._load_tfvars_file(tfvars_file)

    def _load_tfvars_file(self, tfvars_file: Path) -> None:
        try:
            with open(tfvars_file, "r", encoding="utf-8") as f:
                content = hcl2.load(f)
        except OSError as e:
            logger.warning("Could not read tfvars file %s: %s", tfvars_file, e)
            return
        except (UnexpectedInput, UnexpectedToken) as e:
            logger.warning("Could not parse tfvars file %s: %s", tfvars_file, e)
            return

        for key, value in content.items():
            self._variables[_unquote(key)] = _unquote(value)
        logger.debug("Loaded %d variable(s) from %s", len(content), tfvars_file)

    def _parse_variable_defaults(self) -> None:
        """Parse variable blocks for default values from all .tf files."""
        for tf_file in sorted(self.directory.glob("*.tf")):
            try:
                with open(tf_file, "r", encoding="utf-8") as f:
                    content = hcl2.load(f)
            except OSError as e:
                logger.warning("Could not read file %s: %s", tf_file, e)
                continue
            except (UnexpectedInput, UnexpectedToken) as e:
                logger.warning("Could not parse variables from %s: %s", tf_file, e)
                continue

            for variable_block in content.get("variable", []):
                if not isinstance(variable_block, dict):
                    continue
                for var_name, var_config in variable_block.items():
                    # HCL2 sometimes returns list of configs
                    if isinstance(var_config, list) and var_config:
                        var_config = var_config[0]
                    if isinstance(var_config, dict):
                        default = var_config.get("default")
                        if default is not None:
                            self._variables[_unquote(var_name)] = _unquote(default)

    def get_variable(self, name: str) -> Optional[Any]:
        """Get a variable value by name (without the 'var.' prefix)."""
        return self._variables.get(name)

    def to_spec(self) -> NetworkSpec:
        return NetworkSpec.from_variables(self._variables)


def load_spec(directory: Union[str, Path], extra_files: Optional[List[Union[str, Path]]] = None) -> NetworkSpec:
    """Load the NetworkSpec described by the Terraform files in ``directory``."""
    return VariableLoader(directory, extra_files).to_spec()


def _unquote(value: Any) -> Any:
    """Strip the double quotes some python-hcl2 releases keep around strings."""
    if isinstance(value, str):
        if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
            return value[1:-1]
        return value
    if isinstance(value, dict):
        return {_unquote(key): _unquote(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_unquote(item) for item in value]
    return value
