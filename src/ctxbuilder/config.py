import os
import re
import yaml
import logging
from pathlib import Path, PurePosixPath
from typing import Dict, Any, List, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator, field_validator, ConfigDict

from . import constants
from .constants import AssemblyMode, Compression, HealthCheckMode, PermissionMode
from .io.fs import FileSystem, create_fs
from .preprocess import Preprocessor
from .exceptions import (
    ConfigurationError,
    ConfigParsingError,
    ConfigFileMissingError,
    ConfigValidationError,
    CtxPathNotFoundError,
)


logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^(\d+(ms|s|m|h))+$")
_USER_RE = re.compile(r"^[^:\s]+(:[^:\s]+)?$")


class ProjectParams(BaseModel):
    """
        Class Config-Validation Model describe `project`, the directories every build is rooted in
    """
    base_dir: Path = Path(".")
    output_dir: str = constants.DEFAULT_OUTPUT_DIR
    source_dir: str = constants.DEFAULT_SOURCE_DIR
    build_dir: str = constants.DEFAULT_BUILD_DIR
    # packaged build artifact, an explicit input, never guessed
    artifact: Optional[str] = None

    def resolve(self, path: str | Path) -> Path:
        """Resolve `path` against the project base directory unless it is absolute"""
        p = Path(path)
        return p if p.is_absolute() else self.base_dir / p

    @property
    def output_path(self) -> Path:
        return self.resolve(self.output_dir)

    @property
    def source_path(self) -> Path:
        return self.resolve(self.source_dir)

    @property
    def build_path(self) -> Path:
        return self.resolve(self.build_dir)

    @property
    def artifact_path(self) -> Optional[Path]:
        return self.resolve(self.artifact) if self.artifact else None


class Arguments(BaseModel):
    """
        Command arguments in shell form (`shell`) or exec form (`exec`).
        A plain string is read as shell form, a list as exec form.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    shell: Optional[str] = None
    exec_args: Optional[List[str]] = Field(None, alias="exec")

    @model_validator(mode="before")
    @classmethod
    def coerce_plain_values(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"shell": data}
        if isinstance(data, list):
            return {"exec": [str(a) for a in data]}
        return data

    @model_validator(mode="after")
    def check_exactly_one_form(self) -> "Arguments":
        if (self.shell is None) == (self.exec_args is None):
            raise ConfigValidationError("Arguments need exactly one of 'shell' or 'exec'.")
        if self.exec_args is not None and not self.exec_args:
            raise ConfigValidationError("Exec form arguments cannot be empty.")
        return self

    @property
    def is_exec(self) -> bool:
        return self.exec_args is not None


class HealthCheckModel(BaseModel):
    """
        Class Config-Validation Model describe `healthcheck`
    """
    mode: HealthCheckMode = HealthCheckMode.CMD
    interval: Optional[str] = None
    timeout: Optional[str] = None
    start_period: Optional[str] = None
    retries: Optional[int] = Field(None, ge=0)
    cmd: Optional[Arguments] = None

    @field_validator("interval", "timeout", "start_period")
    @classmethod
    def check_duration(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not _DURATION_RE.match(value):
            raise ConfigValidationError(f"Invalid health check duration '{value}', expected e.g. '30s' or '1m30s'.")
        return value

    @model_validator(mode="after")
    def check_cmd_for_mode(self) -> "HealthCheckModel":
        if self.mode is HealthCheckMode.CMD and self.cmd is None:
            raise ConfigValidationError("Health check mode 'cmd' requires a 'cmd'.")
        if self.mode is HealthCheckMode.NONE and (self.cmd or self.interval or self.timeout or self.start_period or self.retries):
            raise ConfigValidationError("Health check mode 'none' takes no other options.")
        return self


class FileSetModel(BaseModel):
    """A directory of files copied into the assembly"""
    directory: str
    output_directory: str = ""
    includes: List[str] = Field(default_factory=list)
    excludes: List[str] = Field(default_factory=list)
    use_default_excludes: bool = True


class FileItemModel(BaseModel):
    """A single file copied into the assembly"""
    source: str
    output_directory: str = ""
    dest_name: Optional[str] = None


class AssemblyDescriptor(BaseModel):
    """
        Declarative description of the assembly content
    """
    id: str = ""
    file_sets: List[FileSetModel] = Field(default_factory=list)
    files: List[FileItemModel] = Field(default_factory=list)


class AssemblyModel(BaseModel):
    """
        Class Config-Validation Model describe `assembly`
    """
    inline: Optional[AssemblyDescriptor] = None
    descriptor: Optional[str] = None
    descriptor_ref: Optional[str] = None
    target_dir: str = constants.DEFAULT_TARGET_DIR
    mode: AssemblyMode = AssemblyMode.DIR
    user: Optional[str] = None
    permissions: PermissionMode = PermissionMode.KEEP
    export_target_dir: bool = False

    @model_validator(mode="after")
    def check_single_source(self) -> "AssemblyModel":
        """Only one of inline/descriptor/descriptor_ref may be given"""
        given = [k for k in ("inline", "descriptor", "descriptor_ref") if getattr(self, k) is not None]
        if len(given) > 1:
            raise ConfigValidationError(f"Assembly can use only one of 'inline', 'descriptor' or 'descriptor_ref', got {given}.")
        return self

    @field_validator("target_dir")
    @classmethod
    def check_target_dir(cls, value: str) -> str:
        if not PurePosixPath(value).is_absolute():
            raise ConfigValidationError(f"Assembly 'target_dir' must be an absolute container path, got '{value}'.")
        return value

    @field_validator("user")
    @classmethod
    def check_user(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not _USER_RE.match(value):
            raise ConfigValidationError(f"Assembly 'user' must look like 'user' or 'user:group', got '{value}'.")
        return value

    def has_content(self) -> bool:
        return self.inline is not None or self.descriptor is not None or self.descriptor_ref is not None


class BuildImageModel(BaseModel):
    """
        Class Config-Validation Model describe the `build` section of an image
    """
    model_config = ConfigDict(populate_by_name=True)

    from_image: Optional[str] = Field(None, alias="from")
    maintainer: Optional[str] = None
    env: Dict[str, str] = Field(default_factory=dict)
    labels: Dict[str, str] = Field(default_factory=dict)
    ports: List[str] = Field(default_factory=list)
    run: List[str] = Field(default_factory=list)
    volumes: List[str] = Field(default_factory=list)
    user: Optional[str] = None
    workdir: Optional[str] = None
    healthcheck: Optional[HealthCheckModel] = None
    cmd: Optional[Arguments] = None
    # legacy single shell-form command
    command: Optional[str] = None
    entrypoint: Optional[Arguments] = None
    optimise: bool = False
    dockerfile: Optional[str] = None
    dockerfile_dir: Optional[str] = None
    compression: Compression = Compression.NONE
    assembly: Optional[AssemblyModel] = None

    @field_validator("env", "labels", mode="before")
    @classmethod
    def stringify_values(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {str(k): "" if v is None else str(v) for k, v in value.items()}
        return value

    @field_validator("ports", "run", "volumes", mode="before")
    @classmethod
    def stringify_items(cls, value: Any) -> Any:
        if isinstance(value, (str, int)):
            value = [value]
        if isinstance(value, list):
            return [str(v) for v in value]
        return value

    def is_dockerfile_mode(self) -> bool:
        return self.dockerfile is not None or self.dockerfile_dir is not None

    def dockerfile_path(self, params: ProjectParams) -> Path:
        """
        Absolute path of the user supplied Dockerfile.
        Relative paths are taken relative to the project source directory.
        """
        if not self.is_dockerfile_mode():
            raise ConfigurationError("No 'dockerfile' or 'dockerfile_dir' configured.")
        name = self.dockerfile or constants.DOCKERFILE_NAME
        path = Path(self.dockerfile_dir) / name if self.dockerfile_dir else Path(name)
        if path.is_absolute():
            return path
        return params.resolve(Path(params.source_dir) / path)

    def effective_cmd(self) -> Optional[Arguments]:
        """The structured `cmd` wins over the legacy `command` string"""
        if self.cmd is not None:
            return self.cmd
        if self.command:
            return Arguments(shell=self.command)
        return None

    def has_assembly(self) -> bool:
        return self.assembly is not None and self.assembly.has_content()


class ImageModel(BaseModel):
    """
        Class Config-Validation Model describe one entry of `images`
    """
    name: str
    build: BuildImageModel = Field(default_factory=BuildImageModel)


class ConfigModel(BaseModel):
    """
        Class Config-Validation Model desribe top-level of config
    """
    project: ProjectParams = Field(default_factory=ProjectParams)
    images: List[ImageModel] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_image_names(self) -> "ConfigModel":
        seen = set()
        for image in self.images:
            if image.name in seen:
                raise ConfigValidationError(f"Duplicate image name '{image.name}'.")
            seen.add(image.name)
        return self


class Config:
    """
    Loads and validates the config file using Pydantic models.
    It is the sole gatekeeper for configuration.
    """
    def __init__(self, config_path: str | Path, fs: Optional[FileSystem] = None):
        self.path = Path(config_path)
        self.fs = fs or create_fs()
        logger.info(f"Loading configuration from '{self.path}'...")
        raw_data = self._load_raw_config()

        # includes and image comprehensions
        processed_data = Preprocessor(raw_data, self.path, self.fs).run()

        logger.info("Validating configuration structure with Pydantic...")
        try:
            self.model = ConfigModel.model_validate(processed_data)
        except ValidationError as e:
            raise ConfigValidationError(f"Configuration validation failed:\n{e}") from e

        project = self.model.project
        # no ".." left in base_dir, tracked sources are compared as paths
        project.base_dir = Path(os.path.normpath(self.path.parent.absolute() / project.base_dir))
        logger.debug(f"Configuration model validated successfully: \n{self.model.model_dump_json(indent=2)}")
        logger.info("Configuration validation passed.")

    def _load_raw_config(self) -> Dict[str, Any]:
        try:
            content = self.fs.read_text(self.path)
            config_data = yaml.safe_load(content)
        except CtxPathNotFoundError as e:
            raise ConfigFileMissingError(f"Configuration file not found at: {self.path}") from e
        except yaml.YAMLError as e:
            raise ConfigParsingError(f"Error parsing YAML file: {e}") from e
        if not isinstance(config_data, dict):
            raise ConfigParsingError("Configuration file must be a YAML document containing a dictionary.")
        logger.debug(f"Successfully parsed YAML from '{self.path}'.")
        return config_data

    @property
    def project(self) -> ProjectParams:
        return self.model.project

    @property
    def images(self) -> List[ImageModel]:
        return self.model.images

    def image(self, name: str) -> ImageModel:
        for image in self.model.images:
            if image.name == name:
                return image
        known = ", ".join(i.name for i in self.model.images) or "none"
        raise ConfigurationError(f"No image named '{name}' in {self.path} (known: {known}).")
