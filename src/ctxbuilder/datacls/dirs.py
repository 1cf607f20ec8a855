from pathlib import Path
from pydantic import BaseModel, ConfigDict


class BuildDirs(BaseModel):
    """
        Class represents the per-image directories of one build invocation.
    """
    model_config = ConfigDict(frozen=True)

    image_name: str
    root_directory: Path
    output_directory: Path
    working_directory: Path
    temporary_root_directory: Path
